"""
Validation of a credential submission against a presentation definition.

Only the input descriptors the submission claims to satisfy (through its
descriptor map) are checked. A holder may submit a subset of what the
definition offers.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError
from jsonpath_ng.ext import parse as parse_jsonpath
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, best_match

from vc_attest.errors import InternalVerifierError, VerificationError
from vc_attest.presentation_definition import (
    DESCRIPTOR_ID_TO_CREDENTIAL_TYPE,
    ConstraintField,
    InputDescriptor,
    PresentationDefinition,
    descriptor_map_of,
)
from vc_attest.schemas import URL_TO_SCHEMA

logger = logging.getLogger(__name__)


def query(document: Any, path: str) -> list[Any]:
    """Return all values at JSONPath ``path`` in ``document``.

    Raises:
        VerificationError: If the path cannot be parsed.
    """
    try:
        expression = parse_jsonpath(path)
    except (JsonPathLexerError, JsonPathParserError) as e:
        raise VerificationError(f"Invalid JSONPath expression: {path}") from e
    return [match.value for match in expression.find(document)]


def find_first_matching_value(field: ConstraintField, credential: dict[str, Any]) -> Any | None:
    """Value of the first candidate path that resolves, or None."""
    for path in field.path:
        values = query(credential, path)
        if values:
            return values[0]
    return None


def find_schema(uri: str) -> dict[str, Any]:
    try:
        return URL_TO_SCHEMA[uri]
    except KeyError:
        raise VerificationError(f"Unknown schema: {uri}") from None


def assert_credential_adheres_to_schema(
    credential: dict[str, Any],
    schema: dict[str, Any],
    credential_type: str,
) -> None:
    attestation = (credential.get("credentialSubject") or {}).get(credential_type)
    if not attestation:
        raise VerificationError(f"No attestation of type {credential_type} present in credential")

    try:
        validator = Draft7Validator(schema)
    except SchemaError as e:
        raise VerificationError("Schema is invalid") from e

    error = best_match(validator.iter_errors(attestation))
    if error is not None:
        location = "/" + "/".join(str(p) for p in error.absolute_path) if error.absolute_path else "input"
        raise VerificationError(f"Credential does not adhere to schema: {location} {error.message}")


def assert_credential_satisfies_field(field: ConstraintField, credential: dict[str, Any]) -> None:
    value = find_first_matching_value(field, credential)

    if value is None:
        if field.is_preferred:
            return
        raise VerificationError(
            f"Credential is missing required field: {field.purpose or field.id or ''}"
        )

    if not field.filter:
        return

    if not Draft7Validator(field.filter).is_valid(value):
        raise VerificationError(
            f"Credential did not satisfy required constraint: {field.purpose or ''}"
        )


def validate_input_descriptor(
    descriptor: InputDescriptor,
    credentials: list[Any],
) -> None:
    """Check every credential claimed for ``descriptor``.

    Raises:
        InternalVerifierError: If the descriptor id has no credential type.
        VerificationError: If a credential does not satisfy the descriptor.
    """
    credential_type = DESCRIPTOR_ID_TO_CREDENTIAL_TYPE.get(descriptor.id)
    if credential_type is None:
        logger.error(
            "InputDescriptorId=%s is included in the presentation definition but not "
            "registered in credentialTypeMap=%s",
            descriptor.id,
            json.dumps(DESCRIPTOR_ID_TO_CREDENTIAL_TYPE),
        )
        raise InternalVerifierError(f"No credential type registered for {descriptor.id}")

    schemas = [find_schema(reference.uri) for reference in descriptor.schema]
    fields = descriptor.constraints.fields if descriptor.constraints else []

    for credential in credentials:
        if not isinstance(credential, dict):
            raise VerificationError(
                f"No credentials satisfy input descriptor: {descriptor.name or descriptor.id}"
            )

        types = credential.get("type") or []
        if credential_type not in (types if isinstance(types, list) else [types]):
            raise VerificationError(
                f"Submission claims having descriptorId {descriptor.id} but the matching "
                f"type {credential_type} does not exist in the credential"
            )

        for schema in schemas:
            assert_credential_adheres_to_schema(credential, schema, credential_type)

        for field in fields:
            assert_credential_satisfies_field(field, credential)


def assert_valid_credential_submission(
    presentation: dict[str, Any],
    definition: PresentationDefinition,
) -> None:
    """Validate a normalized presentation against ``definition``.

    Raises:
        VerificationError: If the submission references unknown descriptors
            or a referenced descriptor is not satisfied.
        InternalVerifierError: If ``definition`` holds a descriptor this
            verifier has no credential type for.
    """
    descriptor_map = descriptor_map_of(presentation)
    known_ids = {d.id for d in definition.input_descriptors}

    unrecognized = [entry.id for entry in descriptor_map if entry.id not in known_ids]
    if unrecognized:
        raise VerificationError(f"Encountered unrecognized subjects: {json.dumps(unrecognized)}")

    for descriptor in definition.input_descriptors:
        entry = next((e for e in descriptor_map if e.id == descriptor.id), None)
        if entry is None:
            logger.debug("Skipping input descriptor %s absent from submission", descriptor.id)
            continue

        credentials = query(presentation, entry.path)
        if not credentials:
            raise VerificationError(
                f"No credentials satisfy input descriptor: {descriptor.name or descriptor.id}"
            )

        validate_input_descriptor(descriptor, credentials)
