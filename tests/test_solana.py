"""Tests for signed verification results for the Solana program."""

import struct

import pytest
from eth_utils import keccak

from vc_attest import solana
from vc_attest.signing import DEFAULT_PRIVATE_KEY, VerificationResult

SUBJECT = "37Jon9vY6V9iXavKqTubjXY1iaUVo6xJJyG95SEHvvAV"
EXPIRATION = 1641492587
VERIFICATION_ID = "c62af7a4-82d5-42be-bd93-df12955e9a4e"
SCHEMA = ["verite.id/definitions/processes/kycaml/0.0.1/generic--usa-legal_person"]
DEFAULT_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def sign(**overrides):
    options = {
        "subject": SUBJECT,
        "verifier_verification_id": VERIFICATION_ID,
        "schema": SCHEMA,
        "chain_id": 1337,
        "name": "VerificationRegistry",
        "version": "1.0",
        "expiration": EXPIRATION,
        "private_key": DEFAULT_PRIVATE_KEY,
    }
    options.update(overrides)
    return solana.sign(**options)


class TestSign:
    """Signatures match the ones the program's client tooling produces."""

    def test_signature(self):
        signed = sign()

        assert signed.signature == (
            "0x452b14e845ca81e9ead06d53db6376a5afb314f790b0a8aa74cc257c062105e2"
            "40215c7e40d5d1af1ec12a8ce50f0f582bf79dd907e12d1c2fe6ae66bd6a70581c"
        )
        assert signed.verification_result.to_dict() == {
            "name": "VerificationRegistry",
            "version": "1.0",
            "cluster": "localnet",
            "schema": SCHEMA,
            "subject": SUBJECT,
            "expiration": EXPIRATION,
            "verifier_verification_id": VERIFICATION_ID,
        }

    def test_different_subject(self):
        assert sign(subject="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v").signature == (
            "0xac1f2e8f612d7b6c78ffa6a7ac50ade4e9c6a07baccf8b1e5de69f16f9fa806d"
            "0122e39404a76b933fc86b7375e2523aaba40e5595d562efdebad313f46482141b"
        )

    def test_different_expiration(self):
        assert sign(expiration=1752503698).signature == (
            "0x028d7b81fb7c782ba6600cbb5964df02a364a8c81eeb9aa19504f99ea148354b"
            "33d1727354b420c7407f4dc5c9311aec0d3459e047b800cf059333e35b178e961c"
        )

    def test_different_private_key(self):
        signed = sign(private_key="0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d")

        assert signed.signature == (
            "0xd2aa52b3cefeea9179497535aba9ea84f410038c2d2aa488b55cfe3b364192a8"
            "4c9d5edad0f48a3753e67bbb7f51f708c267584fd486f4950b5150028e8e52bb1b"
        )

    def test_legacy_recovery_id(self):
        assert sign().signature[-2:] in ("1b", "1c")

    def test_recover_signer(self):
        schema = [
            "https://verite.id/definitions/processes/kycaml/0.0.1/generic--usa-legal_person",
            "https://raw.githubusercontent.com/centrehq/verite/d1b97b3a475aa00cf894f72213f34b7bcb8b3435"
            "/packages/docs/static/definitions/processes/kycaml/0.0.1/generic--usa-entity-accinv-all-checks",
        ]
        signed = sign(schema=schema)

        assert signed.signer == DEFAULT_ADDRESS
        assert solana.recover_signer(signed.verification_result, signed.signature) == DEFAULT_ADDRESS

    def test_invalid_subject(self):
        with pytest.raises(ValueError, match="Invalid Solana address"):
            sign(subject="0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266")

    def test_unknown_network_has_no_cluster(self):
        assert sign(chain_id=42).verification_result.cluster is None


class TestSerialization:
    def test_layout(self):
        result = VerificationResult(
            schema=["a", "bc"],
            subject=SUBJECT,
            expiration=EXPIRATION,
            verifier_verification_id="id",
            name="n",
            cluster="localnet",
        )

        expected = (
            struct.pack("<I", 1) + b"n"
            + struct.pack("<I", 8) + b"localnet"
            + solana.decode_public_key(SUBJECT)
            + struct.pack("<q", EXPIRATION)
            + struct.pack("<I", 1) + b"a"
            + struct.pack("<I", 2) + b"bc"
            + struct.pack("<I", 2) + b"id"
        )
        assert solana.serialize_verification_result(result) == expected

    @pytest.mark.parametrize("optional", [
        {},
        {"name": "VerificationRegistry"},
        {"version": "1.0"},
        {"cluster": "devnet"},
        {"name": "VerificationRegistry", "version": "1.0", "cluster": "devnet"},
    ])
    def test_optional_fields_length(self, optional):
        result = VerificationResult(
            schema=SCHEMA, subject=SUBJECT, expiration=EXPIRATION, verifier_verification_id=VERIFICATION_ID, **optional
        )

        base = 32 + 8 + sum(4 + len(s) for s in SCHEMA) + 4 + len(VERIFICATION_ID)
        expected = base + sum(4 + len(value) for value in optional.values())
        assert len(solana.serialize_verification_result(result)) == expected

    def test_optional_fields_change_hash(self):
        combinations = [
            {},
            {"name": "VerificationRegistry"},
            {"version": "1.0"},
            {"cluster": "devnet"},
            {"name": "VerificationRegistry", "version": "1.0", "cluster": "devnet"},
        ]
        hashes = {
            solana.hash_verification_result(
                VerificationResult(
                    schema=SCHEMA,
                    subject=SUBJECT,
                    expiration=EXPIRATION,
                    verifier_verification_id=VERIFICATION_ID,
                    **optional,
                )
            )
            for optional in combinations
        }

        assert len(hashes) == len(combinations)

    def test_hash_is_keccak256(self):
        result = VerificationResult(schema=[], subject=SUBJECT, expiration=0, verifier_verification_id="")
        assert solana.hash_verification_result(result) == keccak(solana.serialize_verification_result(result))


class TestClusters:
    @pytest.mark.parametrize("chain_id, cluster", [
        (1, "mainnet-beta"),
        (2, "devnet"),
        (3, "testnet"),
        (1337, "localnet"),
    ])
    def test_mapping(self, chain_id, cluster):
        assert solana.convert_chain_id_to_cluster(chain_id) == cluster
        assert solana.convert_cluster_to_chain_id(cluster) == chain_id

    def test_unknown(self):
        assert solana.convert_chain_id_to_cluster(None) is None
        assert solana.convert_chain_id_to_cluster(4) is None
        assert solana.convert_cluster_to_chain_id("mainnet") is None

    def test_public_key_length(self):
        assert len(solana.decode_public_key(SUBJECT)) == 32
        with pytest.raises(ValueError):
            solana.decode_public_key("11111")
