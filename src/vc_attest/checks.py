"""
Per-credential expiry and subject checks.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from eth_utils import is_address

from vc_attest.did_resolver import DIDResolutionError, DIDResolver
from vc_attest.errors import VerificationError

logger = logging.getLogger(__name__)

# CAIP-10 account id of an EVM chain: eip155:<chain reference>:<address>
PKH_EIP155_PATTERN = re.compile(r"eip155:([-a-zA-Z\d]{1,32}):(0x[a-fA-F\d]{1,64})")


def parse_datetime(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, treating naive values as UTC.

    Raises:
        ValueError: If ``value`` is not an ISO 8601 timestamp.
    """
    if not isinstance(value, str):
        raise ValueError(f"Not a timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def assert_not_expired(credential: dict[str, Any], now: datetime | None = None) -> None:
    """Raise unless the credential's ``expirationDate`` (if any) is in the future.

    Raises:
        VerificationError: If the credential has expired or its expiration
            date cannot be read.
    """
    expiration = credential.get("expirationDate")
    if not expiration:
        return

    try:
        expires_at = parse_datetime(expiration)
    except ValueError as e:
        raise VerificationError("Credential has an invalid expirationDate.") from e

    if expires_at < (now or datetime.now(timezone.utc)):
        raise VerificationError("Credential has expired.")


def convert_did_to_address(did: str, resolver: DIDResolver | None = None) -> str:
    """Resolve a did:pkh DID to the Ethereum address it names.

    Raises:
        ValueError: If the DID cannot be resolved or holds no valid address.
    """
    resolver = resolver if resolver is not None else DIDResolver()
    try:
        document = resolver.resolve(did)
    except DIDResolutionError as e:
        logger.info("Failed to resolve did in pkh format", extra={"did": did, "error": str(e)})
        raise ValueError(f"Failed to parse did {did}") from e

    if not document.verification_methods:
        raise ValueError(f"Failed to parse did {did}")

    account_id = document.verification_methods[0].blockchain_account_id
    if not account_id:
        raise ValueError(f"Failed to parse did {did}")

    match = PKH_EIP155_PATTERN.search(account_id)
    if match is None:
        raise ValueError(f"Failed to parse did {did}")

    address = match.group(2)
    if not is_address(address):
        logger.info(
            "Received PKH DID fits regex but failed in ether address validation.",
            extra={"eth_address": address, "blockchain_account_id": account_id},
        )
        raise ValueError(f"Failed to parse did {did}")

    return address


def assert_credential_subject_matches_request(
    request_subject: str,
    credential_subject_did: str | None,
    resolver: DIDResolver | None = None,
) -> None:
    """Raise unless the credential subject is the address being verified.

    Raises:
        VerificationError: If the DID is missing, unparseable or names a
            different address.
    """
    if not credential_subject_did:
        raise VerificationError("Encountered invalid credential. Subject ID not found.")

    try:
        address = convert_did_to_address(credential_subject_did, resolver)
    except ValueError as e:
        raise VerificationError(f"Failed to parse did {credential_subject_did}") from e

    if address.lower() != request_subject.lower():
        raise VerificationError(
            "Credential subject does not match the subject in the verification request. "
            f"{address} is not equal to {request_subject}"
        )
