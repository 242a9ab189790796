"""
Environment configuration.

Settings are read once when ``Config`` is instantiated, so tests can
monkeypatch the environment and build a fresh object.
"""

from __future__ import annotations

import os
import re
from typing import Any


def interpret_as_bool(value: Any) -> bool:
    """Convert an environment value to a boolean using the usual spellings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value > 0
    if isinstance(value, str):
        return re.match(r"^(y|yes|1|true)$", value.strip(), re.IGNORECASE) is not None
    raise ValueError(f"Can't interpret {value!r} as a boolean")


def parse_domain_map(raw: str | None) -> dict[str, str]:
    """Parse a ``host=replacement,host=replacement`` mapping.

    Empty entries and surrounding whitespace are ignored.

    Raises:
        ValueError: If an entry has no ``=``.
    """
    mapping: dict[str, str] = {}
    if not raw:
        return mapping

    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ValueError(f"Invalid domain map entry: {entry}")
        source, target = entry.split("=", 1)
        mapping[source.strip()] = target.strip()
    return mapping


class Config:
    def __init__(self) -> None:
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        self.trusted_issuers: str | None = os.getenv("TRUSTED_ISSUERS") or None
        """
        Regex the credential issuer must match. Unset means any issuer.
        """

        self.status_list_domain_map: dict[str, str] = parse_domain_map(
            os.getenv("STATUS_LIST_INTERNAL_DOMAIN_MAP")
        )
        """
        Status list hosts served by internal infrastructure, mapped to the
        host they are reachable at internally (e.g. ``a.example=svc-a:8080``).
        Requests to these hosts use the relaxed TLS client.
        """

        self.status_list_timeout = float(os.getenv("STATUS_LIST_TIMEOUT", "30"))
        self.status_list_internal_timeout = float(os.getenv("STATUS_LIST_INTERNAL_TIMEOUT", "90"))
        self.did_web_timeout = float(os.getenv("DID_WEB_TIMEOUT", "30"))

        self.verifier_private_key: str | None = os.getenv("VERIFIER_PRIVATE_KEY") or None
        """Hex encoded secp256k1 key used to sign verification results."""

        self.allow_default_signing_key: bool = interpret_as_bool(
            os.getenv("ALLOW_DEFAULT_SIGNING_KEY", "false")
        )
        """
        Permit the well-known development key when no key is configured.
        Never enable outside of local testing.
        """

        self.force_update_completed_verification: bool = interpret_as_bool(
            os.getenv("FORCE_UPDATE_COMPLETED_VERIFICATION", "false")
        )
        """
        Allow a verification to be submitted more than once. Load tests only.
        """
