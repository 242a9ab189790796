"""
Signed verification results for the Solana verification program.

The result is Borsh serialized, hashed with keccak256 and signed with a
recoverable secp256k1 signature, so the program can recover the verifier's
Ethereum style address with ``secp256k1_recover``.

Serialized layout, optional fields only when set:

    name: string, version: string, cluster: string,
    subject: [u8; 32], expiration: i64, schema: [string; len(schema)],
    verifier_verification_id: string

Strings are a u32 little endian byte length followed by UTF-8. The schema
array has a fixed element count and carries no count prefix.
"""

from __future__ import annotations

import enum
import logging
import struct
from datetime import datetime

import base58
from eth_keys import keys
from eth_utils import keccak

from vc_attest.signing import (
    SignedVerificationResult,
    VerificationResult,
    expiration_timestamp,
    resolve_private_key,
)

logger = logging.getLogger(__name__)


class SolanaNetwork(enum.IntEnum):
    MainnetBeta = 1
    Devnet = 2
    Testnet = 3
    Localnet = 1337


_CLUSTERS = {
    SolanaNetwork.MainnetBeta: "mainnet-beta",
    SolanaNetwork.Devnet: "devnet",
    SolanaNetwork.Testnet: "testnet",
    SolanaNetwork.Localnet: "localnet",
}


def convert_chain_id_to_cluster(chain_id: int | None) -> str | None:
    try:
        return _CLUSTERS[SolanaNetwork(chain_id)]
    except ValueError:
        return None


def convert_cluster_to_chain_id(cluster: str) -> SolanaNetwork | None:
    for network, name in _CLUSTERS.items():
        if name == cluster:
            return network
    return None


def decode_public_key(address: str) -> bytes:
    """Decode a base58 Solana public key.

    Raises:
        ValueError: If ``address`` is not a 32 byte base58 string.
    """
    try:
        key = base58.b58decode(address)
    except ValueError as e:
        raise ValueError(f"Invalid Solana address: {address}") from e
    if len(key) != 32:
        raise ValueError(f"Invalid Solana address: {address}")
    return key


def _string(value: str) -> bytes:
    data = value.encode("utf-8")
    return struct.pack("<I", len(data)) + data


def serialize_verification_result(result: VerificationResult) -> bytes:
    """Borsh encode ``result`` in the layout the program hashes."""
    parts = [
        _string(value)
        for value in (result.name, result.version, result.cluster)
        if value
    ]
    parts.append(decode_public_key(result.subject))
    parts.append(struct.pack("<q", result.expiration))
    parts.extend(_string(item) for item in result.schema)
    parts.append(_string(result.verifier_verification_id))
    return b"".join(parts)


def hash_verification_result(result: VerificationResult) -> bytes:
    return keccak(serialize_verification_result(result))


def recover_signer(result: VerificationResult, signature: str) -> str:
    """Checksummed Ethereum address that produced ``signature`` over ``result``."""
    raw = bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)
    if len(raw) != 65:
        raise ValueError(f"Signature must be 65 bytes, got {len(raw)}")
    v = raw[64] - 27 if raw[64] >= 27 else raw[64]
    recoverable = keys.Signature(raw[:64] + bytes([v]))
    public_key = recoverable.recover_public_key_from_msg_hash(hash_verification_result(result))
    return public_key.to_checksum_address()


def sign(
    subject: str,
    verifier_verification_id: str,
    schema: list[str],
    chain_id: int | None = None,
    name: str | None = None,
    version: str | None = None,
    expiration: datetime | int | None = None,
    private_key: str | None = None,
    allow_default_key: bool = False,
) -> SignedVerificationResult:
    """Sign a verification result for the Solana program.

    Raises:
        ValueError: If ``subject`` is not a Solana public key.
        SigningKeyError: If no signing key is available.
    """
    result = VerificationResult(
        schema=list(schema),
        subject=subject,
        expiration=expiration_timestamp(expiration),
        verifier_verification_id=verifier_verification_id,
        name=name or None,
        version=version or None,
        cluster=convert_chain_id_to_cluster(chain_id),
    )

    private = keys.PrivateKey(resolve_private_key(private_key, allow_default_key))
    logger.info("wallet address: %s", private.public_key.to_checksum_address())

    signed = private.sign_msg_hash(hash_verification_result(result))
    # legacy Ethereum recovery id
    signature = "0x" + (signed.to_bytes()[:64] + bytes([27 + signed.v])).hex()

    return SignedVerificationResult(
        verification_result=result,
        signature=signature,
        signer=private.public_key.to_checksum_address(),
    )
