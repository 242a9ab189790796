"""
DID resolution for the did:key, did:web and did:pkh methods.

Each method has its own resolver; ``DIDResolver`` dispatches on the method
name of the DID. Only did:web touches the network.

https://w3c-ccg.github.io/did-method-key/
https://w3c-ccg.github.io/did-method-web/
https://github.com/w3c-ccg/did-pkh/blob/main/did-pkh-method-draft.md
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx
import multibase
from cryptography.hazmat.primitives.asymmetric import ec

logger = logging.getLogger(__name__)

MULTICODEC_ED25519_PUB = b"\xed\x01"
MULTICODEC_SECP256K1_PUB = b"\xe7\x01"
MULTICODEC_P256_PUB = b"\x80\x24"


class DIDResolutionError(Exception):
    """Raised when DID resolution fails."""


@dataclass
class PublicKeyJWK:
    """Public key in JWK format (OKP or EC)."""

    kty: str
    crv: str
    x: str
    y: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublicKeyJWK:
        """Create PublicKeyJWK from a JWK dictionary."""
        return cls(
            kty=data.get("kty", ""),
            crv=data.get("crv", ""),
            x=data.get("x", ""),
            y=data.get("y"),
        )

    def to_dict(self) -> dict[str, str]:
        data = {"kty": self.kty, "crv": self.crv, "x": self.x}
        if self.y is not None:
            data["y"] = self.y
        return data


@dataclass
class VerificationMethod:
    """DID Document verification method."""

    id: str
    type: str
    controller: str
    public_key_jwk: PublicKeyJWK | None = None
    blockchain_account_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], did: str) -> VerificationMethod:
        """Parse a method entry of ``did``'s document; "#frag" ids become absolute."""
        method_id = data.get("id", "")
        if method_id.startswith("#"):
            method_id = did + method_id
        jwk = data.get("publicKeyJwk")
        return cls(
            id=method_id,
            type=data.get("type", ""),
            controller=data.get("controller", ""),
            public_key_jwk=PublicKeyJWK.from_dict(jwk) if jwk else None,
            blockchain_account_id=data.get("blockchainAccountId"),
        )


def _relationship_ids(items: list[Any], did: str) -> list[str]:
    """Method ids of a relationship; entries are references or embedded methods."""
    ids = []
    for item in items:
        method_id = item.get("id") if isinstance(item, dict) else item
        if isinstance(method_id, str):
            ids.append(did + method_id if method_id.startswith("#") else method_id)
    return ids


@dataclass
class DIDDocument:
    """A resolved DID document, reduced to what signature checks need."""

    id: str
    verification_methods: list[VerificationMethod]
    authentication: list[str]
    assertion_method: list[str]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DIDDocument:
        did = data.get("id", "")
        return cls(
            id=did,
            verification_methods=[
                VerificationMethod.from_dict(vm, did) for vm in data.get("verificationMethod") or []
            ],
            authentication=_relationship_ids(data.get("authentication") or [], did),
            assertion_method=_relationship_ids(data.get("assertionMethod") or [], did),
        )

    def get_verification_method(self, method_id: str) -> VerificationMethod | None:
        return next((vm for vm in self.verification_methods if vm.id == method_id), None)


class Resolver(Protocol):
    """A resolver for a single DID method."""

    method: str

    def resolve(self, did: str) -> DIDDocument: ...


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _strip_fragment(did: str) -> str:
    return did.split("#", 1)[0]


def _ec_jwk(curve: ec.EllipticCurve, crv: str, point: bytes) -> PublicKeyJWK:
    """Build an EC JWK from a compressed SEC1 point."""
    try:
        public_key = ec.EllipticCurvePublicKey.from_encoded_point(curve, point)
    except ValueError as e:
        raise DIDResolutionError(f"Invalid {crv} public key: {e}") from e

    numbers = public_key.public_numbers()
    size = (curve.key_size + 7) // 8
    return PublicKeyJWK(
        kty="EC",
        crv=crv,
        x=_b64url(numbers.x.to_bytes(size, "big")),
        y=_b64url(numbers.y.to_bytes(size, "big")),
    )


class KeyResolver:
    """Resolver for did:key (Ed25519, secp256k1 and P-256 keys)."""

    method = "key"

    def resolve(self, did: str) -> DIDDocument:
        did = _strip_fragment(did)
        fingerprint = did[len("did:key:"):]
        if not did.startswith("did:key:") or not fingerprint.startswith("z"):
            raise DIDResolutionError(f"Invalid did:key identifier: {did}")

        try:
            key_bytes = multibase.decode(fingerprint)
        except Exception as e:
            raise DIDResolutionError(f"Failed to decode multibase key of {did}: {e}") from e

        jwk = self._jwk_from_multicodec(key_bytes)
        vm_id = f"{did}#{fingerprint}"
        return DIDDocument(
            id=did,
            verification_methods=[
                VerificationMethod(
                    id=vm_id,
                    type="JsonWebKey2020",
                    controller=did,
                    public_key_jwk=jwk,
                )
            ],
            authentication=[vm_id],
            assertion_method=[vm_id],
        )

    def _jwk_from_multicodec(self, key_bytes: bytes) -> PublicKeyJWK:
        prefix, raw = key_bytes[:2], key_bytes[2:]

        if prefix == MULTICODEC_ED25519_PUB:
            if len(raw) != 32:
                raise DIDResolutionError(
                    f"Ed25519 public key has length {len(raw)}, expected 32"
                )
            return PublicKeyJWK(kty="OKP", crv="Ed25519", x=_b64url(raw))
        if prefix == MULTICODEC_SECP256K1_PUB:
            return _ec_jwk(ec.SECP256K1(), "secp256k1", raw)
        if prefix == MULTICODEC_P256_PUB:
            return _ec_jwk(ec.SECP256R1(), "P-256", raw)

        raise DIDResolutionError(f"Unsupported did:key multicodec prefix: {prefix.hex()}")


class PkhResolver:
    """Resolver for did:pkh blockchain account DIDs."""

    method = "pkh"

    def resolve(self, did: str) -> DIDDocument:
        did = _strip_fragment(did)
        parts = did.split(":")
        if len(parts) != 5 or not all(parts[2:]):
            raise DIDResolutionError(f"Invalid did:pkh identifier: {did}")

        account_id = ":".join(parts[2:])
        vm_id = f"{did}#blockchainAccountId"
        return DIDDocument(
            id=did,
            verification_methods=[
                VerificationMethod(
                    id=vm_id,
                    type="EcdsaSecp256k1RecoveryMethod2020",
                    controller=did,
                    blockchain_account_id=account_id,
                )
            ],
            authentication=[vm_id],
            assertion_method=[vm_id],
        )


class WebResolver:
    """Resolver for did:web, fetching documents over HTTPS.

    Documents are cached per DID for the resolver's lifetime; the HTTP client
    is created on first use and kept open until ``close``.
    """

    method = "web"

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Args:
            timeout: HTTP request timeout in seconds.
            verify_ssl: Verify TLS certificates of the DID host.
            transport: Optional httpx transport, mainly for tests.
        """
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self._transport = transport
        self._client: httpx.Client | None = None
        self._documents: dict[str, DIDDocument] = {}

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.timeout,
                verify=self.verify_ssl,
                transport=self._transport,
                headers={"Accept": "application/did+ld+json, application/json"},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _did_to_url(self, did: str) -> str:
        """Location of the document for ``did``.

        The first segment is the host (``%3A`` encodes a port); further
        segments form a path, otherwise ``/.well-known`` is used:

            did:web:example.com            https://example.com/.well-known/did.json
            did:web:example.com:u:alice    https://example.com/u/alice/did.json
            did:web:example.com%3A8080     https://example.com:8080/.well-known/did.json
        """
        if not did.startswith("did:web:"):
            raise DIDResolutionError(f"Invalid did:web identifier: {did}")

        host, *segments = _strip_fragment(did)[len("did:web:"):].split(":")
        host = host.replace("%3A", ":")
        path = "/".join(quote(s, safe="") for s in segments) if segments else ".well-known"
        return f"https://{host}/{path}/did.json"

    def _fetch(self, did: str) -> dict[str, Any]:
        url = self._did_to_url(did)
        logger.debug("Fetching DID document for %s from %s", did, url)
        try:
            response = self.client.get(url)
        except httpx.RequestError as e:
            raise DIDResolutionError(f"Network error resolving {did}: {e}") from e

        if response.is_error:
            raise DIDResolutionError(f"HTTP error resolving {did}: {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise DIDResolutionError(f"Invalid JSON in DID Document for {did}") from e
        if not isinstance(data, dict):
            raise DIDResolutionError(f"Invalid JSON in DID Document for {did}")
        return data

    def resolve(self, did: str, use_cache: bool = True) -> DIDDocument:
        """Fetch the document of ``did`` (a fragment is ignored).

        Raises:
            DIDResolutionError: If the document cannot be fetched, is not
                JSON, or names a different DID.
        """
        did = _strip_fragment(did)
        if use_cache and did in self._documents:
            return self._documents[did]

        document = DIDDocument.from_dict(self._fetch(did))
        if document.id != did:
            raise DIDResolutionError(
                f"DID Document id mismatch: expected {did}, got {document.id}"
            )

        if use_cache:
            self._documents[did] = document
        return document

    def clear_cache(self) -> None:
        self._documents.clear()


class DIDResolver:
    """Resolves DIDs by dispatching to the resolver for their method."""

    def __init__(
        self,
        resolvers: list[Resolver] | None = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the composite resolver.

        Args:
            resolvers: Method resolvers to use. Defaults to key, web and pkh.
            timeout: HTTP timeout for the default did:web resolver.
            verify_ssl: Whether the default did:web resolver verifies TLS.
        """
        if resolvers is None:
            resolvers = [
                KeyResolver(),
                WebResolver(timeout=timeout, verify_ssl=verify_ssl),
                PkhResolver(),
            ]
        self._resolvers: dict[str, Resolver] = {r.method: r for r in resolvers}

    @property
    def methods(self) -> list[str]:
        return sorted(self._resolvers)

    def resolve(self, did: str) -> DIDDocument:
        """Resolve ``did`` to its DID Document.

        Raises:
            DIDResolutionError: For malformed DIDs, unsupported methods and
                failures of the method resolver.
        """
        parts = did.split(":", 2)
        if len(parts) < 3 or parts[0] != "did" or not parts[2]:
            raise DIDResolutionError(f"Invalid DID: {did}")

        resolver = self._resolvers.get(parts[1])
        if resolver is None:
            raise DIDResolutionError(f"Unsupported DID method: {parts[1]}")

        return resolver.resolve(did)

    def close(self) -> None:
        """Close the HTTP clients of resolvers that hold one."""
        for resolver in self._resolvers.values():
            close = getattr(resolver, "close", None)
            if close is not None:
                close()
