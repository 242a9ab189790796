"""
Types and key handling shared by the chain specific result signers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from vc_attest.errors import SigningKeyError

logger = logging.getLogger(__name__)

# Well-known development key (first hardhat account). Only usable when
# explicitly allowed.
DEFAULT_PRIVATE_KEY = "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

DEFAULT_VALIDITY = timedelta(days=7)


@dataclass
class VerificationResult:
    """The record signed for consumption by an on-chain registry."""

    schema: list[str]
    subject: str
    expiration: int
    verifier_verification_id: str
    name: str | None = None
    version: str | None = None
    cluster: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "schema": list(self.schema),
            "subject": self.subject,
            "expiration": self.expiration,
            "verifier_verification_id": self.verifier_verification_id,
        }
        for key in ("cluster", "version", "name"):
            value = getattr(self, key)
            if value:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationResult:
        return cls(
            schema=list(data["schema"]),
            subject=data["subject"],
            expiration=int(data["expiration"]),
            verifier_verification_id=data["verifier_verification_id"],
            name=data.get("name"),
            version=data.get("version"),
            cluster=data.get("cluster"),
        )


@dataclass
class SignedVerificationResult:
    verification_result: VerificationResult
    signature: str
    signer: str | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "verificationResult": self.verification_result.to_dict(),
            "signature": self.signature,
        }


def default_expiration(now: datetime | None = None) -> datetime:
    return (now or datetime.now(timezone.utc)) + DEFAULT_VALIDITY


def expiration_timestamp(expiration: datetime | int | None) -> int:
    """Unix seconds of ``expiration``, defaulting to now plus the validity window."""
    if expiration is None:
        expiration = default_expiration()
    if isinstance(expiration, datetime):
        return int(expiration.timestamp())
    return int(expiration)


def parse_private_key(private_key: str) -> bytes:
    """Decode a hex encoded secp256k1 private key, with or without ``0x``.

    Raises:
        SigningKeyError: If the key is not 32 bytes of hex.
    """
    text = private_key.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        key = bytes.fromhex(text)
    except ValueError as e:
        raise SigningKeyError("Signing key is not valid hex") from e
    if len(key) != 32:
        raise SigningKeyError(f"Signing key must be 32 bytes, got {len(key)}")
    return key


def resolve_private_key(
    private_key: str | None = None,
    allow_default_key: bool = False,
) -> bytes:
    """Return the signing key to use.

    Falls back to the development key only when ``allow_default_key`` is set.
    Callers pass ``Config.verifier_private_key`` and
    ``Config.allow_default_signing_key``.

    Raises:
        SigningKeyError: If no key is available.
    """
    if private_key:
        return parse_private_key(private_key)

    if allow_default_key:
        logger.warning("Signing with the well-known development key")
        return bytes.fromhex(DEFAULT_PRIVATE_KEY)

    raise SigningKeyError(
        "No signing key configured. Set VERIFIER_PRIVATE_KEY or allow the development key."
    )
