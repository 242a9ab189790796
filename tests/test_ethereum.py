"""Tests for EIP-712 signed verification results."""

import time

import pytest

from vc_attest import ethereum
from vc_attest.config import Config
from vc_attest.errors import SigningKeyError
from vc_attest.signing import DEFAULT_PRIVATE_KEY, VerificationResult

SUBJECT = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
EXPIRATION = 1641492587
VERIFICATION_ID = "c62af7a4-82d5-42be-bd93-df12955e9a4e"
SCHEMA = ["verite.id/definitions/processes/kycaml/0.0.1/generic--usa-legal_person"]
REGISTRY = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
DEFAULT_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"


def sign(**overrides):
    options = {
        "subject": SUBJECT,
        "verifier_verification_id": VERIFICATION_ID,
        "schema": SCHEMA,
        "chain_id": 1337,
        "name": "VerificationRegistry",
        "version": "1.0",
        "registry_address": REGISTRY,
        "expiration": EXPIRATION,
        "private_key": DEFAULT_PRIVATE_KEY,
    }
    options.update(overrides)
    return ethereum.sign(**options)


class TestSign:
    """Signatures match the ones produced by the deployed registry tooling."""

    def test_signature(self):
        signed = sign()

        assert signed.signature == (
            "0xd8a234d69351028abcc3da5c56329cdfc67ada9d97e8b93fd714c243ec58fd8c"
            "6f52d6290de1d2bad2e28e29f11c33b0ac41e2b219a616c35a9425c1672ce7de1c"
        )
        assert signed.verification_result.to_dict() == {
            "schema": SCHEMA,
            "subject": SUBJECT,
            "expiration": EXPIRATION,
            "verifier_verification_id": VERIFICATION_ID,
        }
        assert signed.signer == DEFAULT_ADDRESS

    def test_different_chain_id(self):
        assert sign(chain_id=9000).signature == (
            "0x8b4b9ee3088bbd1c07b45fed91386e5d13c4345d515e54bcfd8a5b964d618a18"
            "02e1d3c36198119dde73deace2bc55ce8ead56a7e2a52ddc3450a8177375b05e1c"
        )

    def test_different_registry(self):
        assert sign(registry_address="0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48").signature == (
            "0x3011814067b53522001eebaa8608cfb42ee56b96b86497c40bb902e98c9db0a7"
            "7a23e959c55bc5f5c1caffd98dfe0bc8d8bfdfed9cb8ef05c3a758c3d489b2261b"
        )

    def test_different_private_key(self):
        signed = sign(registry_address="0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48", private_key=OTHER_KEY)

        assert signed.signature == (
            "0xc120fe7b8340f60d7311bfc9a43bb9bdae871c5f3e2d81def6abd0974e6cc225"
            "61015120ee6430af4e964568b0e1b44ed2e3ddf96f8d5b519e62c843812156b71b"
        )
        assert signed.signer == "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

    def test_recover_signer(self):
        signed = sign()

        recovered = ethereum.recover_signer(
            signed.verification_result,
            signed.signature,
            name="VerificationRegistry",
            version="1.0",
            registry_address=REGISTRY,
            chain_id=1337,
        )

        assert recovered == DEFAULT_ADDRESS

    def test_recover_with_other_domain(self):
        signed = sign()

        recovered = ethereum.recover_signer(signed.verification_result, signed.signature, chain_id=1)

        assert recovered != DEFAULT_ADDRESS

    def test_default_expiration(self):
        signed = sign(expiration=None)

        expected = int(time.time()) + 7 * 24 * 60 * 60
        assert abs(signed.verification_result.expiration - expected) < 60

    def test_key_from_config(self, monkeypatch):
        monkeypatch.setenv("VERIFIER_PRIVATE_KEY", OTHER_KEY)
        config = Config()

        assert sign(private_key=config.verifier_private_key).signer == "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

    def test_no_key(self):
        with pytest.raises(SigningKeyError):
            sign(private_key=None)

    def test_default_key_allowed(self):
        assert sign(private_key=None, allow_default_key=True).signer == DEFAULT_ADDRESS

    def test_default_key_allowed_by_config(self, monkeypatch):
        monkeypatch.setenv("ALLOW_DEFAULT_SIGNING_KEY", "yes")
        config = Config()

        signed = sign(private_key=None, allow_default_key=config.allow_default_signing_key)

        assert signed.signer == DEFAULT_ADDRESS


class TestDomain:
    def test_only_set_parameters(self):
        assert ethereum.domain_separator() == {}
        assert ethereum.domain_separator(name="Registry", chain_id=5) == {"name": "Registry", "chainId": 5}

    def test_full(self):
        assert ethereum.domain_separator("Registry", "1.0", REGISTRY, 1337) == {
            "name": "Registry",
            "version": "1.0",
            "verifyingContract": REGISTRY,
            "chainId": 1337,
        }

    def test_result_round_trip(self):
        result = VerificationResult(
            schema=SCHEMA,
            subject=SUBJECT,
            expiration=EXPIRATION,
            verifier_verification_id=VERIFICATION_ID,
        )
        assert VerificationResult.from_dict(result.to_dict()) == result
