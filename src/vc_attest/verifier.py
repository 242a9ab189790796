"""
Verification of a credential submission.

Verifies a JWT encoded Verifiable Presentation against a presentation
definition:

- presentation envelope and challenge
- signature of every embedded credential JWT
- expiry, subject and revocation of every credential
- input descriptor constraints of the whole submission
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from vc_attest.checks import assert_credential_subject_matches_request, assert_not_expired
from vc_attest.config import Config
from vc_attest.coder import decode_verifiable_credential, verify_verifiable_presentation
from vc_attest.constraints import assert_valid_credential_submission
from vc_attest.did_resolver import DIDResolver
from vc_attest.errors import VerificationError
from vc_attest.presentation_definition import PresentationDefinition
from vc_attest.statuslist import StatusListChecker

logger = logging.getLogger(__name__)


@dataclass
class VerifyOutcome:
    """Result of a successful verification."""

    presentation: dict[str, Any]

    @property
    def credentials(self) -> list[dict[str, Any]]:
        return list(self.presentation.get("verifiableCredential") or [])

    @property
    def descriptor_ids(self) -> list[str]:
        submission = self.presentation.get("presentation_submission") or {}
        return [entry.get("id") for entry in submission.get("descriptor_map") or []]


def _credential_meta(credential: dict[str, Any]) -> dict[str, Any]:
    issuer = credential.get("issuer")
    return {
        "id": credential.get("id"),
        "type": credential.get("type"),
        "issuer": issuer.get("id") if isinstance(issuer, dict) else issuer,
        "subject": (credential.get("credentialSubject") or {}).get("id"),
    }


class Verifier:
    """Verifies credential submissions.

    Resolver and status list checker are shared across verifications so HTTP
    connections stay open.
    """

    def __init__(
        self,
        did_resolver: DIDResolver | None = None,
        statuslist_checker: StatusListChecker | None = None,
    ) -> None:
        self.did_resolver = did_resolver or DIDResolver()
        self.statuslist_checker = statuslist_checker or StatusListChecker(resolver=self.did_resolver)

    def close(self) -> None:
        self.statuslist_checker.close()
        self.did_resolver.close()

    @classmethod
    def from_config(cls, config: Config, verify_ssl: bool = True) -> Verifier:
        """Build a verifier with resolver and status list settings from ``config``."""
        resolver = DIDResolver(timeout=config.did_web_timeout, verify_ssl=verify_ssl)
        return cls(
            did_resolver=resolver,
            statuslist_checker=StatusListChecker(
                resolver=resolver,
                internal_domain_map=config.status_list_domain_map,
                timeout=config.status_list_timeout,
                internal_timeout=config.status_list_internal_timeout,
            ),
        )

    def verify(
        self,
        definition: PresentationDefinition | dict[str, Any],
        submission: str,
        subject: str,
        challenge: str | None = None,
    ) -> VerifyOutcome:
        """Verify ``submission`` for the verification offered by ``definition``.

        Args:
            definition: The presentation definition given to the holder.
            submission: The JWT encoded Verifiable Presentation.
            subject: Address the verification was requested for.
            challenge: Challenge issued with the definition.

        Returns:
            The decoded presentation.

        Raises:
            VerificationError: If any check fails. Credential errors carry
                ``verification_id`` and ``vc_meta`` in ``context``.
            InternalVerifierError: If the definition is inconsistent.
        """
        if isinstance(definition, dict):
            definition = PresentationDefinition.from_dict(definition)
        verification_id = definition.id or "invalid_id"
        log_context = {"verification_id": verification_id}

        started = time.monotonic()
        try:
            presentation = verify_verifiable_presentation(submission, challenge, self.did_resolver)
        except VerificationError as e:
            e.context.update(log_context)
            raise
        logger.debug("verify_vp took %.3fs", time.monotonic() - started, extra=log_context)
        logger.info("VP verified", extra=log_context)

        credentials = [c for c in presentation.get("verifiableCredential") or [] if c]
        if not credentials:
            raise VerificationError("No Verifiable Credential provided", log_context)

        for credential in credentials:
            vc_context = {**log_context, "vc_meta": _credential_meta(credential)}
            try:
                self._verify_credential(credential, subject, vc_context)
            except VerificationError as e:
                e.context.update(vc_context)
                logger.info("VC rejected: %s", e, extra=vc_context)
                raise

        started = time.monotonic()
        assert_valid_credential_submission(presentation, definition)
        logger.debug("assert_vc_schema took %.3fs", time.monotonic() - started, extra=log_context)

        logger.info("VC verified", extra=log_context)
        return VerifyOutcome(presentation=presentation)

    def _verify_credential(
        self,
        credential: dict[str, Any],
        subject: str,
        log_context: dict[str, Any],
    ) -> None:
        token = (credential.get("proof") or {}).get("jwt")
        if not isinstance(token, str):
            raise VerificationError("Input isn't a valid Verifiable Credential. Missing JWT proof.")

        decoded = decode_verifiable_credential(token, self.did_resolver)
        logger.debug("VC signature verified", extra=log_context)

        assert_not_expired(decoded)
        logger.debug("VC expiration verified", extra=log_context)

        assert_credential_subject_matches_request(
            subject,
            (decoded.get("credentialSubject") or {}).get("id"),
            self.did_resolver,
        )
        logger.debug("VC subject verified", extra=log_context)

        started = time.monotonic()
        self.statuslist_checker.assert_not_revoked(decoded)
        logger.debug(
            "VC revocation status verified in %.3fs", time.monotonic() - started, extra=log_context
        )


def verify(
    definition: PresentationDefinition | dict[str, Any],
    submission: str,
    subject: str,
    challenge: str | None = None,
) -> VerifyOutcome:
    """Convenience function to verify a submission with default collaborators."""
    verifier = Verifier()
    try:
        return verifier.verify(definition, submission, subject, challenge)
    finally:
        verifier.close()
