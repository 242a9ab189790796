"""Shared fixtures."""

import uuid

import pytest

from factories import ed25519_signer, pkh_signer
from vc_attest.did_resolver import DIDResolver, KeyResolver, PkhResolver
from vc_attest.presentation_definition import build_presentation_definition


@pytest.fixture
def issuer():
    """Attestation issuer with an Ed25519 did:key."""
    return ed25519_signer()


@pytest.fixture
def holder():
    """Wallet presenting the credentials."""
    return ed25519_signer()


@pytest.fixture
def subject():
    """The account a verification is requested for."""
    return pkh_signer()


@pytest.fixture
def challenge():
    return str(uuid.uuid4())


@pytest.fixture
def offline_resolver():
    """Resolver for the DID methods that never touch the network."""
    return DIDResolver(resolvers=[KeyResolver(), PkhResolver()])


@pytest.fixture
def definition():
    return build_presentation_definition(definition_id=str(uuid.uuid4()))


@pytest.fixture(autouse=True)
def clean_signing_env(monkeypatch):
    """Keep a developer's signing configuration out of the tests."""
    monkeypatch.delenv("VERIFIER_PRIVATE_KEY", raising=False)
    monkeypatch.delenv("ALLOW_DEFAULT_SIGNING_KEY", raising=False)
    monkeypatch.delenv("TRUSTED_ISSUERS", raising=False)
    monkeypatch.delenv("FORCE_UPDATE_COMPLETED_VERIFICATION", raising=False)
    monkeypatch.delenv("STATUS_LIST_INTERNAL_DOMAIN_MAP", raising=False)
