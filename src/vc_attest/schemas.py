"""JSON Schemas of the attestations this verifier accepts, keyed by URI."""

from __future__ import annotations

from typing import Any

KYBPAML_SCHEMA_URI = "https://verite.id/definitions/processes/kycaml/0.0.1/generic--usa-legal_person"
ACCINV_SCHEMA_URI = (
    "https://raw.githubusercontent.com/centrehq/verite/d1b97b3a475aa00cf894f72213f34b7bcb8b3435"
    "/packages/docs/static/definitions/processes/kycaml/0.0.1/generic--usa-entity-accinv-all-checks"
)


def _attestation_schema(attestation_type: str) -> dict[str, Any]:
    return {
        "$ref": f"#/definitions/{attestation_type}",
        "$schema": "http://json-schema.org/draft-07/schema#",
        "definitions": {
            attestation_type: {
                "additionalProperties": False,
                "properties": {
                    "type": {"const": attestation_type, "type": "string"},
                    "process": {"type": "string"},
                    "approvalDate": {"type": "string"},
                },
                "required": ["type", "process", "approvalDate"],
                "type": "object",
            }
        },
    }


KYBPAML_ATTESTATION_SCHEMA = _attestation_schema("KYBPAMLAttestation")
ENTITY_ACCINV_ATTESTATION_SCHEMA = _attestation_schema("EntityAccInvAttestation")

URL_TO_SCHEMA: dict[str, dict[str, Any]] = {
    KYBPAML_SCHEMA_URI: KYBPAML_ATTESTATION_SCHEMA,
    ACCINV_SCHEMA_URI: ENTITY_ACCINV_ATTESTATION_SCHEMA,
}
