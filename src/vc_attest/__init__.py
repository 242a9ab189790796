"""
vc-attest - Verifiable Credential verification and on-chain attestation.

Supports:
- JWT encoded Verifiable Presentations and Credentials (EdDSA, ES256K, ES256)
- did:key, did:web and did:pkh DID resolution
- Presentation Exchange input descriptor validation
- StatusList2021 revocation checking
- EIP-712 (Ethereum) and Borsh + keccak256 (Solana) signed verification results
"""

__version__ = "0.1.0"

from vc_attest.did_resolver import DIDResolutionError, DIDResolver
from vc_attest.errors import (
    InternalVerifierError,
    InvalidChallengeError,
    InvalidSignatureError,
    VerificationError,
)
from vc_attest.presentation_definition import PresentationDefinition, build_presentation_definition
from vc_attest.signing import SignedVerificationResult, VerificationResult
from vc_attest.statuslist import StatusListChecker
from vc_attest.verifier import Verifier, VerifyOutcome, verify

__all__ = [
    "DIDResolver",
    "DIDResolutionError",
    "InternalVerifierError",
    "InvalidChallengeError",
    "InvalidSignatureError",
    "PresentationDefinition",
    "SignedVerificationResult",
    "StatusListChecker",
    "VerificationError",
    "VerificationResult",
    "Verifier",
    "VerifyOutcome",
    "build_presentation_definition",
    "verify",
]
