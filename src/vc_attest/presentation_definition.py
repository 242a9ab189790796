"""
Presentation Exchange data structures and the verifier's standard
presentation definition.

https://identity.foundation/presentation-exchange/#presentation-definition

The definition is embedded in a verification when it is created and must be
used unchanged when the submission is validated, so every type converts
to and from its JSON form without loss.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from vc_attest.errors import VerificationError
from vc_attest.schemas import ACCINV_SCHEMA_URI, KYBPAML_SCHEMA_URI

DESCRIPTOR_ID_TO_CREDENTIAL_TYPE: dict[str, str] = {
    "kybpaml_input": "KYBPAMLAttestation",
    "accinv_input": "EntityAccInvAttestation",
}

SUPPORTED_ALGS = ["EdDSA", "ES256K"]

APPROVAL_DATE_PATTERN = "^[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}.[0-9]{3}Z$"


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class ConstraintField:
    """A field the credential must (or should) contain."""

    path: list[str]
    id: str | None = None
    purpose: str | None = None
    filter: dict[str, Any] | None = None
    predicate: str | None = None

    @property
    def is_preferred(self) -> bool:
        return self.predicate == "preferred"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConstraintField:
        path = data.get("path", [])
        return cls(
            path=[path] if isinstance(path, str) else list(path),
            id=data.get("id"),
            purpose=data.get("purpose"),
            filter=data.get("filter"),
            predicate=data.get("predicate"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "path": list(self.path),
            "id": self.id,
            "purpose": self.purpose,
            "filter": self.filter,
            "predicate": self.predicate,
        })


@dataclass
class HolderConstraint:
    field_id: list[str]
    directive: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HolderConstraint:
        return cls(field_id=list(data.get("field_id", [])), directive=data.get("directive", "required"))

    def to_dict(self) -> dict[str, Any]:
        return {"field_id": list(self.field_id), "directive": self.directive}


@dataclass
class Constraints:
    fields: list[ConstraintField] = field(default_factory=list)
    statuses: dict[str, dict[str, str]] | None = None
    is_holder: list[HolderConstraint] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Constraints:
        is_holder = data.get("is_holder")
        return cls(
            fields=[ConstraintField.from_dict(f) for f in data.get("fields") or []],
            statuses=data.get("statuses"),
            is_holder=[HolderConstraint.from_dict(h) for h in is_holder] if is_holder is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "statuses": self.statuses,
            "is_holder": [h.to_dict() for h in self.is_holder] if self.is_holder is not None else None,
            "fields": [f.to_dict() for f in self.fields],
        })


@dataclass
class SchemaReference:
    uri: str
    required: bool | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaReference:
        return cls(uri=data["uri"], required=data.get("required"))

    def to_dict(self) -> dict[str, Any]:
        return _compact({"uri": self.uri, "required": self.required})


@dataclass
class InputDescriptor:
    """One credential the verifier asks the holder for."""

    id: str
    schema: list[SchemaReference]
    name: str | None = None
    purpose: str | None = None
    group: str | None = None
    constraints: Constraints | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InputDescriptor:
        constraints = data.get("constraints")
        return cls(
            id=data["id"],
            schema=[SchemaReference.from_dict(s) for s in data.get("schema", [])],
            name=data.get("name"),
            purpose=data.get("purpose"),
            group=data.get("group"),
            constraints=Constraints.from_dict(constraints) if constraints is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "id": self.id,
            "name": self.name,
            "purpose": self.purpose,
            "group": self.group,
            "schema": [s.to_dict() for s in self.schema],
            "constraints": self.constraints.to_dict() if self.constraints is not None else None,
        })


@dataclass
class PresentationDefinition:
    id: str
    input_descriptors: list[InputDescriptor]
    format: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    name: str | None = None
    purpose: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PresentationDefinition:
        return cls(
            id=data["id"],
            input_descriptors=[InputDescriptor.from_dict(d) for d in data.get("input_descriptors") or []],
            format=data.get("format") or {},
            name=data.get("name"),
            purpose=data.get("purpose"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "id": self.id,
            "name": self.name,
            "purpose": self.purpose,
            "format": self.format,
            "input_descriptors": [d.to_dict() for d in self.input_descriptors],
        })


@dataclass
class DescriptorMapEntry:
    """Submission side pointer from an input descriptor to a credential."""

    id: str
    format: str
    path: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DescriptorMapEntry:
        return cls(id=data.get("id", ""), format=data.get("format", ""), path=data.get("path", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "format": self.format, "path": self.path}


def descriptor_map_of(presentation: dict[str, Any]) -> list[DescriptorMapEntry]:
    """Read ``presentation_submission.descriptor_map`` of a presentation.

    Raises:
        VerificationError: If the submission or one of its entries is malformed.
    """
    submission = presentation.get("presentation_submission") or {}
    if not isinstance(submission, dict):
        raise VerificationError("presentation_submission must be an object")
    descriptor_map = submission.get("descriptor_map") or []
    if not isinstance(descriptor_map, list):
        raise VerificationError("descriptor_map must be an array")

    entries = []
    for data in descriptor_map:
        if not isinstance(data, dict):
            raise VerificationError("descriptor_map entries must be objects")
        if not all(isinstance(data.get(key, ""), str) for key in ("id", "format", "path")):
            raise VerificationError("descriptor_map entry id, format and path must be strings")
        entries.append(DescriptorMapEntry.from_dict(data))
    return entries


def _issuer_field(trusted_issuers: str | None) -> ConstraintField:
    return ConstraintField(
        path=["$.issuer.id", "$.issuer", "$.vc.issuer", "$.iss"],
        purpose="The issuer of the credential must be trusted",
        predicate="required",
        filter={"pattern": trusted_issuers, "type": "string"} if trusted_issuers else None,
    )


def _attestation_path(credential_type: str, attribute: str) -> list[str]:
    return [
        f"$.credentialSubject.{credential_type}.{attribute}",
        f"$.vc.credentialSubject.{credential_type}.{attribute}",
        f"$.{credential_type}.{attribute}",
    ]


def _input_descriptor(
    descriptor_id: str,
    name: str,
    purpose: str,
    schema_uri: str,
    process_purpose: str,
    approval_purpose: str,
    trusted_issuers: str | None,
) -> InputDescriptor:
    credential_type = DESCRIPTOR_ID_TO_CREDENTIAL_TYPE[descriptor_id]
    return InputDescriptor(
        id=descriptor_id,
        name=name,
        purpose=purpose,
        schema=[SchemaReference(uri=schema_uri, required=True)],
        constraints=Constraints(
            statuses={
                "active": {"directive": "required"},
                "revoked": {"directive": "disallowed"},
            },
            is_holder=[HolderConstraint(field_id=["subjectId"], directive="required")],
            fields=[
                _issuer_field(trusted_issuers),
                ConstraintField(
                    path=_attestation_path(credential_type, "process"),
                    purpose=process_purpose,
                    predicate="required",
                    filter={"type": "string"},
                ),
                ConstraintField(
                    path=_attestation_path(credential_type, "approvalDate"),
                    purpose=approval_purpose,
                    predicate="required",
                    filter={"type": "string", "pattern": APPROVAL_DATE_PATTERN},
                ),
            ],
        ),
    )


def build_presentation_definition(
    trusted_issuers: str | None = None,
    definition_id: str | None = None,
) -> PresentationDefinition:
    """Build the definition offered to holders.

    Holders may satisfy any subset of the descriptors; only the ones named in
    a submission's descriptor map are validated.

    Args:
        trusted_issuers: Regex the issuer must match. Any issuer when unset.
        definition_id: Id of the definition. A random UUID when unset.
    """
    return PresentationDefinition(
        id=definition_id or str(uuid.uuid4()),
        format={key: {"alg": list(SUPPORTED_ALGS)} for key in ("jwt", "jwt_vc", "jwt_vp")},
        input_descriptors=[
            _input_descriptor(
                "kybpaml_input",
                name="Proof of KYBP",
                purpose="Please provide a valid credential from a KYBP/AML issuer",
                schema_uri=KYBPAML_SCHEMA_URI,
                process_purpose="The process used for KYBP/AML.",
                approval_purpose="The date upon which this KYBP/AML Attestation was issued.",
                trusted_issuers=trusted_issuers,
            ),
            _input_descriptor(
                "accinv_input",
                name="Proof of Accredited Investor from Circle",
                purpose="Please provide a valid credential from a Accredited Investor",
                schema_uri=ACCINV_SCHEMA_URI,
                process_purpose="The process used for analysing Accredited Investor.",
                approval_purpose="The date upon which this Accredited Investor Attestation was issued.",
                trusted_issuers=trusted_issuers,
            ),
        ],
    )
