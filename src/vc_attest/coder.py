"""
Decoding and verification of JWT encoded Verifiable Presentations and
Verifiable Credentials.

JWT payloads are normalized into the W3C data model the same way
did-jwt-vc does it: the ``vp``/``vc`` claim is merged into the top level and
the registered claims (``iss``, ``sub``, ``jti``, ``nbf``, ``exp``) are moved
to their data model properties.
"""

from __future__ import annotations

import copy
import logging
import time
from datetime import datetime, timezone
from typing import Any

from cryptography.hazmat.primitives import hashes
from eth_keys import keys as eth_keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as EthKeysValidationError
from jwcrypto import jwk, jws
from jwcrypto.common import JWException, base64url_decode, json_decode

from vc_attest.did_resolver import (
    DIDDocument,
    DIDResolutionError,
    DIDResolver,
    PublicKeyJWK,
    VerificationMethod,
)
from vc_attest.errors import (
    InvalidChallengeError,
    InvalidSignatureError,
    VerificationError,
)

logger = logging.getLogger(__name__)

CREDENTIALS_CONTEXT_V1 = "https://www.w3.org/2018/credentials/v1"
CREDENTIALS_CONTEXT_V2 = "https://www.w3.org/ns/credentials/v2"
JWT_PROOF_TYPE = "JwtProof2020"

JWK_ALGS = ("EdDSA", "ES256K", "ES256")
RECOVERY_ALGS = ("ES256K", "ES256K-R")

CLOCK_SKEW = 300

VP_PREFIX = "Input isn't a valid Verifiable Presentation."
VC_PREFIX = "Input isn't a valid Verifiable Credential."


class JWTDecodeError(Exception):
    """A JWT could not be decoded or its signature did not verify."""


class SignatureMismatchError(JWTDecodeError):
    """No key of the signer's DID document verifies the signature."""


def _default_resolver(resolver: DIDResolver | None) -> DIDResolver:
    return resolver if resolver is not None else DIDResolver()


def _split(token: str) -> list[str]:
    if not isinstance(token, str):
        raise JWTDecodeError("JWT must be a string")
    parts = token.split(".")
    if len(parts) != 3:
        raise JWTDecodeError("Incorrect format JWT")
    return parts


def _decode_json_segment(segment: str) -> dict[str, Any]:
    try:
        value = json_decode(base64url_decode(segment))
    except (ValueError, UnicodeDecodeError) as e:
        raise JWTDecodeError(f"Invalid JWT segment: {e}") from e
    if not isinstance(value, dict):
        raise JWTDecodeError("JWT segment is not a JSON object")
    return value


def decode_unverified(token: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return ``(header, payload)`` of a compact JWT without checking anything."""
    header_b64, payload_b64, _ = _split(token)
    return _decode_json_segment(header_b64), _decode_json_segment(payload_b64)


def _to_iso(timestamp: Any) -> str:
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _check_time_claims(payload: dict[str, Any], now: int | None = None) -> None:
    now = int(time.time()) if now is None else now
    try:
        nbf = payload.get("nbf")
        iat = payload.get("iat")
        exp = payload.get("exp")
        if nbf is not None and int(nbf) > now + CLOCK_SKEW:
            raise JWTDecodeError(f"JWT not valid before nbf: {nbf}")
        if nbf is None and iat is not None and int(iat) > now + CLOCK_SKEW:
            raise JWTDecodeError(f"JWT not valid yet (issued in the future) iat: {iat}")
        if exp is not None and int(exp) <= now - CLOCK_SKEW:
            raise JWTDecodeError(f"JWT has expired: exp: {exp} < now: {now}")
    except (TypeError, ValueError) as e:
        raise JWTDecodeError(f"Invalid JWT time claim: {e}") from e


def _candidate_methods(document: DIDDocument, kid: str | None) -> list[VerificationMethod]:
    """Verification methods to try, the one named by ``kid`` first."""
    methods = list(document.verification_methods)
    if not kid:
        return methods
    named = document.get_verification_method(f"{document.id}{kid}" if kid.startswith("#") else kid)
    if named is not None:
        methods.remove(named)
        methods.insert(0, named)
    return methods


def _verify_with_jwk(token: str, alg: str, public_key: PublicKeyJWK) -> bool:
    signed = jws.JWS()
    signed.allowed_algs = list(JWK_ALGS)
    try:
        signed.deserialize(token)
        signed.verify(jwk.JWK(**public_key.to_dict()), alg=alg)
    except (JWException, ValueError, TypeError) as e:
        logger.debug("Signature check with %s key failed: %s", public_key.crv, e)
        return False
    return True


def _verify_with_recovery(token: str, account_id: str) -> bool:
    """Recover the secp256k1 signer and compare it to a CAIP-10 account id."""
    header_b64, payload_b64, signature_b64 = token.split(".")
    try:
        signature = base64url_decode(signature_b64)
    except ValueError:
        return False
    if len(signature) not in (64, 65):
        return False

    digest = hashes.Hash(hashes.SHA256())
    digest.update(f"{header_b64}.{payload_b64}".encode("ascii"))
    message_hash = digest.finalize()

    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    if len(signature) == 65:
        recovery_ids = [signature[64] - 27 if signature[64] >= 27 else signature[64]]
    else:
        recovery_ids = [0, 1]

    expected = account_id.rsplit(":", 1)[-1].lower()
    for v in recovery_ids:
        try:
            recovered = eth_keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(message_hash)
        except (BadSignature, EthKeysValidationError):
            continue
        if recovered.to_checksum_address().lower() == expected:
            return True
    return False


def verify_jws(token: str, document: DIDDocument) -> None:
    """Verify the signature of ``token`` against the keys of ``document``.

    Raises:
        JWTDecodeError: If the algorithm is unsupported.
        SignatureMismatchError: If no verification method verifies the token.
    """
    header, _ = decode_unverified(token)
    alg = header.get("alg")
    if alg not in JWK_ALGS and alg not in RECOVERY_ALGS:
        raise JWTDecodeError(f"Unsupported algorithm: {alg}")

    for vm in _candidate_methods(document, header.get("kid")):
        if vm.public_key_jwk is not None and alg in JWK_ALGS:
            if _verify_with_jwk(token, alg, vm.public_key_jwk):
                return
        elif vm.blockchain_account_id and alg in RECOVERY_ALGS:
            if _verify_with_recovery(token, vm.blockchain_account_id):
                return

    raise SignatureMismatchError("Invalid signature.")


def decode_signed_jwt(
    token: str,
    signer_claim: str = "iss",
    resolver: DIDResolver | None = None,
) -> dict[str, Any]:
    """Verify a JWT signed by the DID in ``signer_claim`` and return its payload.

    Raises:
        JWTDecodeError: On malformed tokens, unresolvable signers, bad
            signatures and time claims outside the allowed skew.
    """
    _, payload = decode_unverified(token)
    signer = payload.get(signer_claim)
    if not isinstance(signer, str) or not signer:
        raise JWTDecodeError(f"JWT has no {signer_claim} claim")

    try:
        document = _default_resolver(resolver).resolve(signer)
    except DIDResolutionError as e:
        raise JWTDecodeError(f"Unable to resolve DID document for {signer}: {e}") from e

    verify_jws(token, document)
    _check_time_claims(payload)
    return payload


def decode_unsecured_jwt(token: str) -> dict[str, Any]:
    """Decode a JWT that declares ``alg: none``.

    Raises:
        JWTDecodeError: If the token is malformed or declares another
            algorithm.
    """
    header, payload = decode_unverified(token)
    if header.get("alg") != "none":
        raise JWTDecodeError(f"Not an unsecured JWT (alg {header.get('alg')})")
    return payload


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _claim_object(container: dict[str, Any], name: str) -> dict[str, Any]:
    value = container.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise JWTDecodeError(f"{name} must be a JSON object")
    return value


def _merge_lists(*values: Any) -> list[Any]:
    merged: list[Any] = []
    for value in values:
        for item in _as_list(value):
            if item not in merged:
                merged.append(item)
    return merged


def normalize_credential(payload: dict[str, Any], token: str) -> dict[str, Any]:
    """Turn a JWT VC payload into a W3C credential object."""
    payload = copy.deepcopy(payload)
    vc = _claim_object(payload, "vc")
    payload.pop("vc", None)
    credential = {**payload, **vc}

    credential["@context"] = _merge_lists(payload.get("@context"), vc.get("@context"))
    credential["type"] = _merge_lists(payload.get("type"), vc.get("type"))

    subject = {
        **_claim_object(payload, "credentialSubject"),
        **_claim_object(vc, "credentialSubject"),
    }
    sub = credential.pop("sub", None)
    if sub is not None and "id" not in subject:
        subject["id"] = sub
    credential["credentialSubject"] = subject

    iss = credential.pop("iss", None)
    if iss is not None:
        issuer = credential.get("issuer")
        issuer = dict(issuer) if isinstance(issuer, dict) else {}
        issuer["id"] = iss
        credential["issuer"] = issuer

    jti = credential.pop("jti", None)
    if jti is not None and "id" not in credential:
        credential["id"] = jti

    nbf = credential.pop("nbf", None)
    if nbf is not None:
        credential["issuanceDate"] = _to_iso(nbf)

    exp = credential.pop("exp", None)
    if exp is not None:
        credential["expirationDate"] = _to_iso(exp)

    credential["proof"] = {"type": JWT_PROOF_TYPE, "jwt": token}
    return credential


def normalize_presentation(payload: dict[str, Any], token: str) -> dict[str, Any]:
    """Turn a JWT VP payload into a W3C presentation object.

    Embedded JWT credentials are normalized too, without being verified.
    """
    payload = copy.deepcopy(payload)
    vp = _claim_object(payload, "vp")
    payload.pop("vp", None)
    presentation = {**payload, **vp}

    presentation["@context"] = _merge_lists(payload.get("@context"), vp.get("@context"))
    presentation["type"] = _merge_lists(payload.get("type"), vp.get("type"))

    iss = presentation.pop("iss", None)
    if iss is not None and "holder" not in presentation:
        presentation["holder"] = iss

    aud = presentation.pop("aud", None)
    if aud is not None:
        presentation["verifier"] = _as_list(aud)

    jti = presentation.pop("jti", None)
    if jti is not None and "id" not in presentation:
        presentation["id"] = jti

    nbf = presentation.pop("nbf", None)
    if nbf is not None:
        presentation["issuanceDate"] = _to_iso(nbf)

    exp = presentation.pop("exp", None)
    if exp is not None:
        presentation["expirationDate"] = _to_iso(exp)

    credentials = []
    for item in _as_list(presentation.get("verifiableCredential")):
        if isinstance(item, str):
            _, vc_payload = decode_unverified(item)
            credentials.append(normalize_credential(vc_payload, item))
        else:
            credentials.append(item)
    presentation["verifiableCredential"] = credentials

    presentation["proof"] = {"type": JWT_PROOF_TYPE, "jwt": token}
    return presentation


def _validate_context(document: dict[str, Any]) -> None:
    contexts = _as_list(document.get("@context"))
    if CREDENTIALS_CONTEXT_V1 not in contexts and CREDENTIALS_CONTEXT_V2 not in contexts:
        raise JWTDecodeError(f"@context is missing default context \"{CREDENTIALS_CONTEXT_V1}\"")


def validate_presentation(presentation: dict[str, Any]) -> None:
    """Check the structure of a normalized presentation."""
    _validate_context(presentation)
    if "VerifiablePresentation" not in _as_list(presentation.get("type")):
        raise JWTDecodeError("type is missing default \"VerifiablePresentation\"")
    for credential in presentation.get("verifiableCredential", []):
        if not isinstance(credential, dict):
            raise JWTDecodeError("verifiableCredential entries must be credentials")
        validate_credential(credential)


def validate_credential(credential: dict[str, Any]) -> None:
    """Check the structure of a normalized credential."""
    _validate_context(credential)
    if "VerifiableCredential" not in _as_list(credential.get("type")):
        raise JWTDecodeError("type is missing default \"VerifiableCredential\"")
    subject = credential.get("credentialSubject")
    if not isinstance(subject, dict) or not subject:
        raise JWTDecodeError("credentialSubject must not be empty")
    issuer = credential.get("issuer")
    issuer_id = issuer.get("id") if isinstance(issuer, dict) else issuer
    if not isinstance(issuer_id, str) or not issuer_id:
        raise JWTDecodeError("issuer is missing")


def _check_nonce(payload: dict[str, Any], challenge: str | None, required: bool) -> None:
    nonce = payload.get("nonce")
    if challenge is None:
        if required and not nonce:
            raise InvalidChallengeError(f"{VP_PREFIX} Nonce is invalid.")
        return
    if nonce != challenge:
        raise InvalidChallengeError(f"{VP_PREFIX} Nonce is invalid.")


def decode_verifiable_presentation(
    token: str,
    challenge: str | None = None,
    resolver: DIDResolver | None = None,
) -> dict[str, Any]:
    """Verify a signed VP JWT and return the normalized presentation.

    Raises:
        InvalidChallengeError: If ``challenge`` is given and the nonce differs.
        VerificationError: If the signature, time claims or structure are
            invalid.
    """
    try:
        payload = decode_signed_jwt(token, "iss", resolver)
    except JWTDecodeError as e:
        raise VerificationError(f"{VP_PREFIX} {e}") from e

    _check_nonce(payload, challenge, required=False)

    try:
        presentation = normalize_presentation(payload, token)
        validate_presentation(presentation)
    except JWTDecodeError as e:
        raise VerificationError(f"{VP_PREFIX} {e}") from e
    return presentation


def decode_verifiable_credential(
    token: str,
    resolver: DIDResolver | None = None,
) -> dict[str, Any]:
    """Verify a signed VC JWT and return the normalized credential.

    Raises:
        InvalidSignatureError: If no issuer key verifies the signature.
        VerificationError: For any other decoding or structure failure.
    """
    try:
        payload = decode_signed_jwt(token, "iss", resolver)
        credential = normalize_credential(payload, token)
        validate_credential(credential)
    except SignatureMismatchError as e:
        raise InvalidSignatureError(f"{VC_PREFIX} Invalid signature.") from e
    except JWTDecodeError as e:
        raise VerificationError(f"{VC_PREFIX} {e}") from e
    return credential


def verify_verifiable_presentation(
    token: str,
    challenge: str | None = None,
    resolver: DIDResolver | None = None,
) -> dict[str, Any]:
    """Decode a VP JWT, accepting unsecured (``alg: none``) presentations.

    The signed decode is tried first; if it fails the token is accepted as an
    unsecured JWT only when its header declares ``alg: none``. The nonce is
    mandatory on this path.

    Raises:
        InvalidChallengeError: If the nonce is missing or differs from
            ``challenge``.
        VerificationError: If neither decode succeeds or the structure is
            invalid.
    """
    errors: list[str] = []
    payload: dict[str, Any] | None = None

    try:
        payload = decode_signed_jwt(token, "iss", resolver)
    except JWTDecodeError as e:
        errors.append(f"signed: {e}")

    if payload is None:
        try:
            payload = decode_unsecured_jwt(token)
            logger.debug("Accepted unsecured presentation JWT")
        except JWTDecodeError as e:
            errors.append(f"unsecured: {e}")

    if payload is None:
        raise VerificationError(f"{VP_PREFIX} {'; '.join(errors)}")

    _check_nonce(payload, challenge, required=True)

    try:
        presentation = normalize_presentation(payload, token)
        validate_presentation(presentation)
    except JWTDecodeError as e:
        raise VerificationError(f"{VP_PREFIX} {e}") from e
    return presentation
