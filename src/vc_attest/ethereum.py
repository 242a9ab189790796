"""
EIP-712 signed verification results for Ethereum registries.

https://eips.ethereum.org/EIPS/eip-712
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data

from vc_attest.signing import (
    SignedVerificationResult,
    VerificationResult,
    expiration_timestamp,
    resolve_private_key,
)

logger = logging.getLogger(__name__)

VERIFICATION_RESULT_TYPES = {
    "VerificationResult": [
        {"name": "schema", "type": "string[]"},
        {"name": "subject", "type": "address"},
        {"name": "expiration", "type": "uint256"},
        {"name": "verifier_verification_id", "type": "string"},
    ]
}


def domain_separator(
    name: str | None = None,
    version: str | None = None,
    registry_address: str | None = None,
    chain_id: int | None = None,
) -> dict[str, Any]:
    """EIP-712 domain holding only the parameters that are set.

    The domain binds a result to one chain and registry contract.
    """
    domain: dict[str, Any] = {}
    if name:
        domain["name"] = name
    if version:
        domain["version"] = version
    if registry_address:
        domain["verifyingContract"] = registry_address
    if chain_id:
        domain["chainId"] = chain_id
    return domain


def encode_verification_result(
    domain: dict[str, Any],
    result: VerificationResult,
) -> SignableMessage:
    return encode_typed_data(
        domain_data=domain,
        message_types=VERIFICATION_RESULT_TYPES,
        message_data={
            "schema": list(result.schema),
            "subject": result.subject,
            "expiration": result.expiration,
            "verifier_verification_id": result.verifier_verification_id,
        },
    )


def recover_signer(
    result: VerificationResult,
    signature: str,
    name: str | None = None,
    version: str | None = None,
    registry_address: str | None = None,
    chain_id: int | None = None,
) -> str:
    """Checksummed address that produced ``signature`` over ``result``."""
    domain = domain_separator(name, version, registry_address, chain_id)
    return Account.recover_message(encode_verification_result(domain, result), signature=signature)


def sign(
    subject: str,
    verifier_verification_id: str,
    schema: list[str],
    chain_id: int | None = None,
    name: str | None = None,
    version: str | None = None,
    registry_address: str | None = None,
    expiration: datetime | int | None = None,
    private_key: str | None = None,
    allow_default_key: bool = False,
) -> SignedVerificationResult:
    """Sign a verification result with EIP-712 typed data.

    Raises:
        SigningKeyError: If no signing key is available.
    """
    domain = domain_separator(name, version, registry_address, chain_id)
    result = VerificationResult(
        schema=list(schema),
        subject=subject,
        expiration=expiration_timestamp(expiration),
        verifier_verification_id=verifier_verification_id,
    )

    account = Account.from_key(resolve_private_key(private_key, allow_default_key))
    logger.info("wallet address: %s", account.address)

    message = encode_verification_result(domain, result)
    signed = account.sign_message(message)
    signature = "0x" + bytes(signed.signature).hex()

    recovered = Account.recover_message(message, signature=signature)
    logger.info("recovered address: %s", recovered)

    return SignedVerificationResult(verification_result=result, signature=signature, signer=recovered)
