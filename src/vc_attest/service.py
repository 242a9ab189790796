"""
Verification lifecycle: create an offer, accept one submission, report status.

This is the logic an HTTP layer calls into. Transport concerns (routes,
status codes, authentication) stay outside.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from eth_utils import is_address

from vc_attest import ethereum, solana
from vc_attest.config import Config
from vc_attest.errors import AlreadySubmittedError, VerificationError
from vc_attest.presentation_definition import (
    PresentationDefinition,
    build_presentation_definition,
    descriptor_map_of,
)
from vc_attest.signing import SignedVerificationResult
from vc_attest.store import (
    STATUS_APPROVED,
    STATUS_CREATED,
    STATUS_REJECTED,
    InMemoryVerificationStore,
    VerificationRecord,
    VerificationStore,
)
from vc_attest.verifier import Verifier

logger = logging.getLogger(__name__)

SUPPORTED_NETWORKS = ("ethereum", "solana")


def validate_network(network: str | None) -> str:
    if not network:
        raise VerificationError("network is required")
    if network not in SUPPORTED_NETWORKS:
        raise VerificationError(f"Unsupported network: {network}")
    return network


def validate_subject_address(network: str, subject: str | None) -> str:
    if not subject:
        raise VerificationError("subject is required")

    if network == "ethereum":
        valid = isinstance(subject, str) and is_address(subject)
    else:
        try:
            solana.decode_public_key(subject)
            valid = True
        except (ValueError, TypeError):
            valid = False

    if not valid:
        raise VerificationError(f"Invalid subject address for {network}")
    return subject


def validate_chain_id(network: str, chain_id: Any) -> int | None:
    """Normalize ``chain_id``: a positive int on Ethereum, a cluster name on Solana."""
    if not chain_id:
        return None

    if network == "ethereum":
        if not isinstance(chain_id, int) or isinstance(chain_id, bool):
            raise VerificationError("chainId must be a number")
        if chain_id < 1:
            raise VerificationError("chainId must be greater than 0")
        return chain_id

    if not isinstance(chain_id, str):
        raise VerificationError("chainId must be a string")
    network_id = solana.convert_cluster_to_chain_id(chain_id)
    if network_id is None:
        raise VerificationError("Invalid chainId")
    return int(network_id)


def validate_optional_string(label: str, value: Any) -> str | None:
    if not value:
        return None
    if not isinstance(value, str):
        raise VerificationError(f"{label} must be a string")
    return value


def schemas_for_submission(
    definition: PresentationDefinition,
    presentation: dict[str, Any],
) -> list[str]:
    """Schema URIs of the descriptors the submission satisfied, in map order."""
    uris_by_id = {d.id: [s.uri for s in d.schema] for d in definition.input_descriptors}
    schema: list[str] = []
    for entry in descriptor_map_of(presentation):
        schema.extend(uris_by_id.get(entry.id, []))
    return schema


class VerificationService:
    """Creates verifications and turns submissions into signed results."""

    def __init__(
        self,
        store: VerificationStore | None = None,
        verifier: Verifier | None = None,
        config: Config | None = None,
    ) -> None:
        self.config = config or Config()
        self.store = store or InMemoryVerificationStore(
            force_update_completed=self.config.force_update_completed_verification
        )
        self.verifier = verifier or Verifier.from_config(self.config)

    def create_verification(
        self,
        network: str,
        subject: str,
        chain_id: Any = None,
        registry_address: str | None = None,
        name: Any = None,
        version: Any = None,
    ) -> VerificationRecord:
        """Create a verification offer for ``subject``.

        Raises:
            VerificationError: If a parameter is invalid.
        """
        params = {"network": network, "subject": subject, "chain_id": chain_id}
        try:
            network = validate_network(network)
            subject = validate_subject_address(network, subject)
            normalized_chain_id = validate_chain_id(network, chain_id)
            name = validate_optional_string("name", name)
            version = validate_optional_string("version", version)
        except VerificationError as e:
            e.context.update(params)
            raise

        verification_id = str(uuid.uuid4())
        definition = build_presentation_definition(
            trusted_issuers=self.config.trusted_issuers,
            definition_id=verification_id,
        )
        record = self.store.create(VerificationRecord(
            id=verification_id,
            network=network,
            subject=subject,
            challenge=str(uuid.uuid4()),
            presentation_definition=definition.to_dict(),
            chain_id=normalized_chain_id,
            registry_address=registry_address or None,
            name=name,
            version=version,
        ))
        logger.info("Created verification", extra={"verification_id": verification_id})
        return record

    def submit(self, verification_id: str, submission: str) -> SignedVerificationResult:
        """Verify ``submission`` and sign the result.

        A failed verification completes the record as rejected. Either
        outcome is final: later submissions raise ``AlreadySubmittedError``.

        Raises:
            NotFoundError: If the verification does not exist.
            AlreadySubmittedError: If the verification is already complete.
            VerificationError: If the submission fails verification.
        """
        record = self.store.find(verification_id)
        log_context = {"verification_id": record.id}
        logger.info("Submit: start", extra=log_context)

        if record.status != STATUS_CREATED and not self.config.force_update_completed_verification:
            raise AlreadySubmittedError("Verification already complete", log_context)

        definition = PresentationDefinition.from_dict(record.presentation_definition)

        started = time.monotonic()
        try:
            outcome = self.verifier.verify(definition, submission, record.subject, record.challenge)
        except VerificationError as e:
            self.store.mark_rejected(record.id, e.message)
            logger.info("Submit: rejected: %s", e, extra={**log_context, **e.context})
            raise
        logger.debug("Submit: verify took %.3fs", time.monotonic() - started, extra=log_context)

        signed = self._sign(record, schemas_for_submission(definition, outcome.presentation))
        logger.info("Submit: signed for network %s", record.network, extra=log_context)

        self.store.save_submission(
            record.id,
            outcome.presentation,
            status=STATUS_APPROVED,
            verification_result=signed.verification_result.to_dict(),
            signature=signed.signature,
        )
        logger.info("Submit: saved submission", extra=log_context)
        return signed

    def _sign(self, record: VerificationRecord, schema: list[str]) -> SignedVerificationResult:
        options = {
            "subject": record.subject,
            "verifier_verification_id": record.id,
            "schema": schema,
            "chain_id": record.chain_id,
            "name": record.name,
            "version": record.version,
            "private_key": self.config.verifier_private_key,
            "allow_default_key": self.config.allow_default_signing_key,
        }
        if record.network == "solana":
            return solana.sign(**options)
        return ethereum.sign(registry_address=record.registry_address, **options)

    def status(self, verification_id: str) -> dict[str, Any]:
        """Current status, with the signed result or the rejection reason."""
        record = self.store.find(verification_id)
        if record.status == STATUS_APPROVED:
            return {
                "status": record.status,
                "verificationResult": record.verification_result,
                "signature": record.signature,
            }
        if record.status == STATUS_REJECTED:
            return {"status": record.status, "message": record.status_detail}
        return {"status": record.status}
