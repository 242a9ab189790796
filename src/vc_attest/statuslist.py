"""
Revocation checking against StatusList2021 credentials.

The status list is itself a JWT encoded Verifiable Credential whose
``credentialSubject.encodedList`` holds a base64 encoded, compressed
bitstring. Bit ``statusListIndex`` set means revoked.
https://www.w3.org/TR/vc-status-list/

Any failure to obtain or read the list rejects the credential.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
import zlib
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from vc_attest.coder import decode_verifiable_credential
from vc_attest.did_resolver import DIDResolver
from vc_attest.errors import VerificationError

logger = logging.getLogger(__name__)

NOT_REACHABLE = "StatusListCredential URL is not reachable."
INVALID_RESPONSE = "Response from StatusListCredential URL is invalid."
REVOKED = "Credential has been revoked."


class StatusListError(Exception):
    """Raised when a status list cannot be decoded or read."""


@dataclass
class StatusListEntry:
    """Parsed credentialStatus of a revocable credential."""

    status_list_credential: str
    status_list_index: int
    id: str | None = None
    type: str = "StatusList2021Entry"

    @classmethod
    def from_credential(cls, credential: dict[str, Any]) -> StatusListEntry | None:
        """Return the entry of ``credential``, or None if it is not revocable.

        Raises:
            StatusListError: If the credentialStatus is malformed.
        """
        status = credential.get("credentialStatus")
        if not isinstance(status, dict) or "statusListIndex" not in status:
            return None
        try:
            return cls(
                id=status.get("id"),
                type=status.get("type", "StatusList2021Entry"),
                status_list_credential=status["statusListCredential"],
                status_list_index=int(status["statusListIndex"]),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise StatusListError(f"Invalid credentialStatus: {e}") from e


def get_status_list_credential_url(
    url: str,
    internal_domain_map: dict[str, str] | None = None,
) -> tuple[str, bool]:
    """Rewrite ``url`` for internally served status lists.

    Returns:
        The URL to fetch and whether it targets an internal host.
    """
    if not internal_domain_map:
        return url, False

    parts = urlsplit(url)
    if parts.netloc in internal_domain_map:
        return urlunsplit(parts._replace(netloc=internal_domain_map[parts.netloc])), True
    return url, False


def decode_bitstring(encoded_list: str) -> bytes:
    """Decode a base64 (or base64url) encoded, zlib or gzip compressed bitstring.

    Raises:
        StatusListError: If decoding fails.
    """
    try:
        normalized = encoded_list.strip().replace("-", "+").replace("_", "/")
        compressed = base64.b64decode(normalized + "=" * (-len(normalized) % 4))
        # wbits | 32 detects the zlib or gzip header
        return zlib.decompress(compressed, zlib.MAX_WBITS | 32)
    except (binascii.Error, zlib.error, ValueError, AttributeError) as e:
        raise StatusListError(f"Failed to decode bitstring: {e}") from e


def get_bit(bitstring: bytes, index: int) -> bool:
    """Get the value of a bit at the given index.

    Bit 0 is the leftmost (most significant) bit of byte 0.

    Raises:
        StatusListError: If index is out of range.
    """
    total_bits = len(bitstring) * 8
    if index < 0 or index >= total_bits:
        raise StatusListError(
            f"StatusList index {index} out of range [0, {total_bits})"
        )

    byte_index = index // 8
    bit_position = 7 - (index % 8)

    return bool((bitstring[byte_index] >> bit_position) & 1)


def is_bit_revoked(encoded_list: str, index: int) -> bool:
    return get_bit(decode_bitstring(encoded_list), index)


class StatusListChecker:
    """Checks credentials against their revocation status lists.

    Two HTTP clients are kept open: a strict one for status lists on the
    internet and a relaxed TLS one for hosts listed in
    ``internal_domain_map``, which are fetched at their mapped address.
    """

    def __init__(
        self,
        resolver: DIDResolver | None = None,
        internal_domain_map: dict[str, str] | None = None,
        timeout: float = 30.0,
        internal_timeout: float = 90.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the StatusList checker.

        Args:
            resolver: Resolver for the status list issuer's DID.
            internal_domain_map: Host to internal host replacements.
            timeout: Timeout in seconds for external status lists.
            internal_timeout: Timeout in seconds for internal status lists.
            transport: Optional httpx transport shared by both clients.
        """
        self.resolver = resolver if resolver is not None else DIDResolver()
        self.internal_domain_map = dict(internal_domain_map or {})
        self.timeout = timeout
        self.internal_timeout = internal_timeout
        self._transport = transport
        self._external_client: httpx.Client | None = None
        self._internal_client: httpx.Client | None = None

    @property
    def external_client(self) -> httpx.Client:
        if self._external_client is None:
            self._external_client = httpx.Client(
                timeout=self.timeout,
                verify=True,
                transport=self._transport,
            )
        return self._external_client

    @property
    def internal_client(self) -> httpx.Client:
        if self._internal_client is None:
            self._internal_client = httpx.Client(
                timeout=self.internal_timeout,
                verify=False,
                transport=self._transport,
            )
        return self._internal_client

    def close(self) -> None:
        for client in (self._external_client, self._internal_client):
            if client is not None:
                client.close()
        self._external_client = None
        self._internal_client = None

    def fetch_status_list(self, status_list_url: str) -> dict[str, Any]:
        """Fetch and verify the status list credential at ``status_list_url``.

        Raises:
            VerificationError: If the list cannot be fetched or is not a
                valid credential.
        """
        url, internal = get_status_list_credential_url(status_list_url, self.internal_domain_map)
        client = self.internal_client if internal else self.external_client

        started = time.monotonic()
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            logger.info(
                "Failed to fetch statusListCredential=%s",
                url,
                extra={"error": str(e), "internal": internal},
            )
            raise VerificationError(NOT_REACHABLE) from e
        logger.debug("Fetched status list %s in %.3fs", url, time.monotonic() - started)

        if response.status_code != 200:
            logger.info(
                "Revocation status url returned non-200 http code. url=%s, httpCode=%s",
                url,
                response.status_code,
            )
            raise VerificationError(INVALID_RESPONSE)

        try:
            return decode_verifiable_credential(response.text.strip(), self.resolver)
        except VerificationError as e:
            logger.info("Status list credential at %s is invalid: %s", url, e)
            raise VerificationError(INVALID_RESPONSE) from e

    def is_revoked(
        self,
        credential: dict[str, Any],
        status_list: dict[str, Any] | None = None,
    ) -> bool:
        """Whether a revocable credential is revoked.

        Args:
            credential: The credential to check.
            status_list: A decoded status list credential. Fetched from the
                credential's statusListCredential URL when omitted.

        Raises:
            VerificationError: If the status list cannot be obtained or read.
        """
        try:
            entry = StatusListEntry.from_credential(credential)
        except StatusListError as e:
            raise VerificationError(str(e)) from e
        if entry is None:
            return False

        if status_list is None:
            status_list = self.fetch_status_list(entry.status_list_credential)

        encoded_list = (status_list.get("credentialSubject") or {}).get("encodedList")
        if not encoded_list:
            raise VerificationError(INVALID_RESPONSE)

        try:
            return is_bit_revoked(encoded_list, entry.status_list_index)
        except StatusListError as e:
            logger.info("Unable to read status list: %s", e)
            raise VerificationError(INVALID_RESPONSE) from e

    def assert_not_revoked(
        self,
        credential: dict[str, Any],
        status_list: dict[str, Any] | None = None,
    ) -> None:
        """Raise if the credential is revoked or its status cannot be confirmed.

        Credentials without ``credentialStatus.statusListIndex`` are not
        revocable and always pass.

        Raises:
            VerificationError: If revoked or the status list is unusable.
        """
        if self.is_revoked(credential, status_list):
            raise VerificationError(REVOKED)
