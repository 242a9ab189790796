"""
Verification records and an in-memory store for them.

A record is completed at most once, either approved with its submission or
rejected with the reason. The store enforces that with an atomic
check-and-set, the way a conditional UPDATE would in a database.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Protocol

from vc_attest.errors import AlreadySubmittedError, NotFoundError

logger = logging.getLogger(__name__)

STATUS_CREATED = "created"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"


@dataclass
class VerificationRecord:
    id: str
    network: str
    subject: str
    challenge: str
    presentation_definition: dict[str, Any]
    chain_id: int | None = None
    registry_address: str | None = None
    name: str | None = None
    version: str | None = None
    status: str = STATUS_CREATED
    status_detail: str | None = None
    credential_submission: dict[str, Any] | None = None
    verification_result: dict[str, Any] | None = None
    signature: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    verified_at: datetime | None = None


class VerificationStore(Protocol):
    def create(self, record: VerificationRecord) -> VerificationRecord: ...

    def find(self, verification_id: str) -> VerificationRecord: ...

    def save_submission(
        self,
        verification_id: str,
        submission: dict[str, Any],
        status: str,
        verification_result: dict[str, Any] | None = None,
        signature: str | None = None,
        status_detail: str | None = None,
    ) -> VerificationRecord: ...

    def mark_rejected(self, verification_id: str, status_detail: str) -> VerificationRecord: ...


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class InMemoryVerificationStore:
    """Thread safe verification store kept in process memory.

    Records are copied on the way in and out, so callers never share state
    with the store.
    """

    def __init__(self, force_update_completed: bool = False) -> None:
        """
        Args:
            force_update_completed: Allow overwriting a recorded submission.
                Meant for load tests only.
        """
        self.force_update_completed = force_update_completed
        self._records: dict[str, VerificationRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: VerificationRecord) -> VerificationRecord:
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"Verification {record.id} already exists")
            self._records[record.id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def find(self, verification_id: str) -> VerificationRecord:
        """
        Raises:
            NotFoundError: If the id is not a UUID or is unknown.
        """
        if not _is_uuid(verification_id):
            raise NotFoundError(f"Verification not found for {verification_id}")
        with self._lock:
            record = self._records.get(verification_id)
        if record is None:
            raise NotFoundError(f"Verification not found for {verification_id}")
        return copy.deepcopy(record)

    def save_submission(
        self,
        verification_id: str,
        submission: dict[str, Any],
        status: str,
        verification_result: dict[str, Any] | None = None,
        signature: str | None = None,
        status_detail: str | None = None,
    ) -> VerificationRecord:
        """Record the submission and its outcome.

        Raises:
            NotFoundError: If the verification does not exist.
            AlreadySubmittedError: If the verification is already complete.
        """
        with self._lock:
            record = self._records.get(verification_id)
            if record is None:
                raise NotFoundError(f"Verification not found for {verification_id}")
            if record.status != STATUS_CREATED and not self.force_update_completed:
                raise AlreadySubmittedError(
                    "Verification already complete", {"verification_id": verification_id}
                )
            updated = replace(
                record,
                credential_submission=copy.deepcopy(submission),
                verification_result=copy.deepcopy(verification_result),
                signature=signature,
                status=status,
                status_detail=status_detail,
                verified_at=datetime.now(timezone.utc),
            )
            self._records[verification_id] = updated
        logger.debug("Saved submission for %s with status %s", verification_id, status)
        return copy.deepcopy(updated)

    def mark_rejected(self, verification_id: str, status_detail: str) -> VerificationRecord:
        """Complete a verification as rejected. A rejection is final.

        Raises:
            NotFoundError: If the verification does not exist.
            AlreadySubmittedError: If the verification is already complete.
        """
        with self._lock:
            record = self._records.get(verification_id)
            if record is None:
                raise NotFoundError(f"Verification not found for {verification_id}")
            if record.status != STATUS_CREATED and not self.force_update_completed:
                raise AlreadySubmittedError(
                    "Verification already complete", {"verification_id": verification_id}
                )
            updated = replace(
                record,
                status=STATUS_REJECTED,
                status_detail=status_detail,
                verified_at=datetime.now(timezone.utc),
            )
            self._records[verification_id] = updated
        logger.debug("Rejected %s: %s", verification_id, status_detail)
        return copy.deepcopy(updated)
