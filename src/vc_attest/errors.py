"""
Exception hierarchy for vc-attest.

Every verification failure is a ``VerificationError`` carrying a single
human-readable message. Callers map the class to a transport status
(client error vs internal error) and log ``context`` as structured data.
"""

from __future__ import annotations

from typing import Any


class VcAttestError(Exception):
    """Base class for all vc-attest errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        return self.message


class VerificationError(VcAttestError):
    """The submitted input failed verification (client error)."""


class InvalidSignatureError(VerificationError):
    """A credential JWT signature does not verify against the issuer's keys."""


class InvalidChallengeError(VerificationError):
    """The presentation nonce is missing or does not match the challenge."""


class AlreadySubmittedError(VerificationError):
    """A credential submission was already recorded for the verification."""


class NotFoundError(VcAttestError):
    """No verification exists with the requested id."""


class InternalVerifierError(VcAttestError):
    """An invariant of the verifier itself was violated.

    The message shown to callers is always generic; the detail only goes to
    the log.
    """

    def __init__(self, detail: str, context: dict[str, Any] | None = None) -> None:
        super().__init__("Internal server error", context)
        self.detail = detail


class SigningKeyError(VcAttestError):
    """No usable signing key is configured."""
