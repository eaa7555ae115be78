"""
Credential resolution for the vendor adapters.

Nothing here is cached: the local secrets document is re-read on every call
so that a request always sees the current environment and file contents.

Precedence for each secret: explicit request value > environment variable >
`secrets.local.json` (upper-case key, then lower-case key).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from integrations.logger import get_logger

logger = get_logger("credentials")

SECRETS_FILENAME = "secrets.local.json"
_PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def _secrets_candidates() -> list[Path]:
    candidates = []
    explicit = os.getenv("SECRETS_FILE", "").strip()
    if explicit:
        candidates.append(Path(explicit))
    candidates.append(Path.cwd() / SECRETS_FILENAME)
    candidates.append(_PACKAGE_ROOT / SECRETS_FILENAME)
    return candidates


def load_local_secrets() -> Optional[dict[str, Any]]:
    """Return the first readable secrets document as a dict, or None."""
    path = next((p for p in _secrets_candidates() if p.is_file()), None)
    if path is None:
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("secrets.unreadable", extra={"fields": {"path": str(path), "error": str(e)}})
        return None
    if not isinstance(data, dict):
        logger.warning("secrets.not_an_object", extra={"fields": {"path": str(path)}})
        return None
    return data


def resolve_secret(
    name: str,
    explicit: Optional[str] = None,
    secrets: Optional[dict[str, Any]] = None,
) -> Optional[str]:
    """First non-empty of: explicit value, env var `name`, secrets[NAME], secrets[name]."""
    if explicit:
        return explicit
    from_env = os.getenv(name)
    if from_env:
        return from_env
    if secrets:
        for key in (name.upper(), name.lower()):
            value = secrets.get(key)
            if value:
                return str(value)
    return None


@dataclass
class CredentialSet:
    username: Optional[str] = None
    password: Optional[str] = None
    client_key: Optional[str] = None
    agent_key: Optional[str] = None
    sms_client_id: Optional[str] = None
    sms_client_secret: Optional[str] = None


def resolve_mie_credentials(
    username: Optional[str] = None,
    password: Optional[str] = None,
    client_key: Optional[str] = None,
    agent_key: Optional[str] = None,
) -> CredentialSet:
    secrets = load_local_secrets()
    return CredentialSet(
        username=resolve_secret("MIE_USERNAME", username, secrets),
        password=resolve_secret("MIE_PASSWORD", password, secrets),
        client_key=resolve_secret("MIE_CLIENT_KEY", client_key, secrets),
        agent_key=resolve_secret("MIE_AGENT_KEY", agent_key, secrets),
    )


def resolve_sms_credentials() -> CredentialSet:
    secrets = load_local_secrets()
    return CredentialSet(
        sms_client_id=resolve_secret("SMS_CLIENT_ID", None, secrets),
        sms_client_secret=resolve_secret("SMS_CLIENT_SECRET", None, secrets),
    )


def env_detection_flags() -> dict[str, bool]:
    return {
        "MIE_PASSWORD": bool(os.getenv("MIE_PASSWORD")),
        "MIE_USERNAME": bool(os.getenv("MIE_USERNAME")),
        "SMS_CLIENT_SECRET": bool(os.getenv("SMS_CLIENT_SECRET")),
    }
