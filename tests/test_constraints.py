"""Tests for presentation definition constraint validation."""

import pytest

from factories import attestation
from vc_attest.constraints import (
    assert_credential_adheres_to_schema,
    assert_valid_credential_submission,
    find_first_matching_value,
    query,
)
from vc_attest.errors import InternalVerifierError, VerificationError
from vc_attest.presentation_definition import (
    ConstraintField,
    Constraints,
    InputDescriptor,
    PresentationDefinition,
    SchemaReference,
    build_presentation_definition,
)
from vc_attest.schemas import KYBPAML_ATTESTATION_SCHEMA

ISSUER = "did:web:issuer.example"
SUBJECT = "did:pkh:eip155:1:0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def make_credential(attestation_type="KYBPAMLAttestation", **attestation_overrides):
    """A normalized attestation credential."""
    return {
        "@context": ["https://www.w3.org/2018/credentials/v1"],
        "type": ["VerifiableCredential", attestation_type],
        "issuer": {"id": ISSUER},
        "credentialSubject": {
            "id": SUBJECT,
            attestation_type: attestation(attestation_type, **attestation_overrides),
        },
    }


def make_presentation(credentials, descriptor_ids=None):
    if descriptor_ids is None:
        descriptor_ids = ["kybpaml_input"] * len(credentials)
    return {
        "type": ["VerifiablePresentation"],
        "verifiableCredential": credentials,
        "presentation_submission": {
            "descriptor_map": [
                {"id": d, "format": "jwt_vc", "path": f"$.verifiableCredential[{i}]"}
                for i, d in enumerate(descriptor_ids)
            ]
        },
    }


def single_descriptor_definition(*fields, descriptor_id="kybpaml_input"):
    return PresentationDefinition(
        id="definition",
        input_descriptors=[
            InputDescriptor(
                id=descriptor_id,
                schema=[],
                constraints=Constraints(fields=list(fields)),
            )
        ],
    )


class TestQuery:
    def test_nested_value(self):
        assert query({"a": {"b": [1, 2]}}, "$.a.b[1]") == [2]

    def test_no_match(self):
        assert query({"a": {}}, "$.a.b") == []

    def test_invalid_expression(self):
        with pytest.raises(VerificationError, match=r"Invalid JSONPath expression: \$\["):
            query({}, "$[")

    def test_first_matching_path_wins(self):
        field = ConstraintField(path=["$.missing", "$.issuer.id", "$.issuer"])
        assert find_first_matching_value(field, make_credential()) == ISSUER


class TestSchema:
    def test_valid(self):
        assert_credential_adheres_to_schema(make_credential(), KYBPAML_ATTESTATION_SCHEMA, "KYBPAMLAttestation")

    def test_wrong_type_reports_location(self):
        credential = make_credential(approvalDate=5)

        with pytest.raises(VerificationError) as exc_info:
            assert_credential_adheres_to_schema(credential, KYBPAML_ATTESTATION_SCHEMA, "KYBPAMLAttestation")

        assert exc_info.value.message.startswith("Credential does not adhere to schema: /approvalDate ")

    def test_additional_property_reported_at_input(self):
        credential = make_credential(extra="value")

        with pytest.raises(VerificationError) as exc_info:
            assert_credential_adheres_to_schema(credential, KYBPAML_ATTESTATION_SCHEMA, "KYBPAMLAttestation")

        assert exc_info.value.message.startswith("Credential does not adhere to schema: input ")
        assert "extra" in exc_info.value.message

    def test_missing_attestation(self):
        credential = make_credential()
        del credential["credentialSubject"]["KYBPAMLAttestation"]

        with pytest.raises(VerificationError, match="No attestation of type KYBPAMLAttestation present"):
            assert_credential_adheres_to_schema(credential, KYBPAML_ATTESTATION_SCHEMA, "KYBPAMLAttestation")


class TestSubmission:
    """Tests against the standard definition."""

    def test_valid_submission(self, definition):
        assert_valid_credential_submission(make_presentation([make_credential()]), definition)

    def test_both_descriptors(self, definition):
        presentation = make_presentation(
            [make_credential(), make_credential("EntityAccInvAttestation")],
            ["kybpaml_input", "accinv_input"],
        )
        assert_valid_credential_submission(presentation, definition)

    def test_descriptor_not_submitted_is_skipped(self, definition):
        presentation = make_presentation([make_credential("EntityAccInvAttestation")], ["accinv_input"])
        assert_valid_credential_submission(presentation, definition)

    def test_unrecognized_descriptor(self, definition):
        presentation = make_presentation([make_credential()], ["kycaml_input"])

        with pytest.raises(VerificationError) as exc_info:
            assert_valid_credential_submission(presentation, definition)

        assert exc_info.value.message == 'Encountered unrecognized subjects: ["kycaml_input"]'

    def test_path_matches_nothing(self, definition):
        presentation = make_presentation([make_credential()])
        presentation["presentation_submission"]["descriptor_map"][0]["path"] = "$.verifiableCredential[3]"

        with pytest.raises(VerificationError, match="No credentials satisfy input descriptor: Proof of KYBP"):
            assert_valid_credential_submission(presentation, definition)

    def test_credential_type_mismatch(self, definition):
        presentation = make_presentation([make_credential("EntityAccInvAttestation")])

        with pytest.raises(VerificationError) as exc_info:
            assert_valid_credential_submission(presentation, definition)

        assert exc_info.value.message == (
            "Submission claims having descriptorId kybpaml_input but the matching "
            "type KYBPAMLAttestation does not exist in the credential"
        )

    def test_schema_violation(self, definition):
        presentation = make_presentation([make_credential(process=None)])

        with pytest.raises(VerificationError, match="Credential does not adhere to schema: /process"):
            assert_valid_credential_submission(presentation, definition)

    def test_approval_date_format(self, definition):
        presentation = make_presentation([make_credential(approvalDate="2022-04-19")])

        with pytest.raises(VerificationError) as exc_info:
            assert_valid_credential_submission(presentation, definition)

        assert exc_info.value.message == (
            "Credential did not satisfy required constraint: "
            "The date upon which this KYBP/AML Attestation was issued."
        )

    def test_trusted_issuer(self):
        definition = build_presentation_definition(trusted_issuers=r"^did:web:issuer\.example$")
        assert_valid_credential_submission(make_presentation([make_credential()]), definition)

    def test_untrusted_issuer(self):
        definition = build_presentation_definition(trusted_issuers=r"^did:web:other\.example$")

        with pytest.raises(VerificationError) as exc_info:
            assert_valid_credential_submission(make_presentation([make_credential()]), definition)

        assert exc_info.value.message == (
            "Credential did not satisfy required constraint: The issuer of the credential must be trusted"
        )

    def test_definition_round_trips_through_json(self, definition):
        restored = PresentationDefinition.from_dict(definition.to_dict())
        assert_valid_credential_submission(make_presentation([make_credential()]), restored)


class TestFields:
    """Tests for single field constraints."""

    def test_missing_required_field(self):
        definition = single_descriptor_definition(
            ConstraintField(path=["$.credentialSubject.nickname"], purpose="A nickname is needed")
        )

        with pytest.raises(VerificationError, match="Credential is missing required field: A nickname is needed"):
            assert_valid_credential_submission(make_presentation([make_credential()]), definition)

    def test_missing_preferred_field(self):
        definition = single_descriptor_definition(
            ConstraintField(path=["$.credentialSubject.nickname"], predicate="preferred")
        )
        assert_valid_credential_submission(make_presentation([make_credential()]), definition)

    def test_falsy_values_are_present(self):
        credential = make_credential()
        credential["credentialSubject"]["score"] = 0
        definition = single_descriptor_definition(
            ConstraintField(path=["$.credentialSubject.score"], filter={"type": "integer", "minimum": 0})
        )
        assert_valid_credential_submission(make_presentation([credential]), definition)

    def test_filter_without_constraints_passes_any_value(self):
        definition = single_descriptor_definition(ConstraintField(path=["$.issuer.id"]))
        assert_valid_credential_submission(make_presentation([make_credential()]), definition)

    def test_type_checked_without_fields(self):
        definition = single_descriptor_definition()

        with pytest.raises(VerificationError, match="does not exist in the credential"):
            assert_valid_credential_submission(
                make_presentation([make_credential("EntityAccInvAttestation")]),
                definition,
            )

    def test_unregistered_descriptor(self):
        definition = single_descriptor_definition(descriptor_id="passport_input")
        presentation = make_presentation([make_credential()], ["passport_input"])

        with pytest.raises(InternalVerifierError) as exc_info:
            assert_valid_credential_submission(presentation, definition)

        assert exc_info.value.message == "Internal server error"
        assert "passport_input" in exc_info.value.detail

    def test_unknown_schema(self):
        definition = single_descriptor_definition()
        definition.input_descriptors[0].schema = [SchemaReference(uri="https://example.com/unknown")]

        with pytest.raises(VerificationError, match="Unknown schema: https://example.com/unknown"):
            assert_valid_credential_submission(make_presentation([make_credential()]), definition)
