"""
SMS Portal REST adapter.

Builds bulk-send batches from loosely shaped recipient lists and forwards
any request to the vendor host with Basic-Auth built from resolved
credentials.
"""

from __future__ import annotations

import base64
import os
import re
from typing import Any, Callable, Optional

from integrations.credentials import CredentialSet, resolve_sms_credentials
from integrations.errors import MissingCredentialError
from integrations.logger import get_logger
from integrations.outbound import OutboundResult, dispatch

logger = get_logger("smsportal")

SMS_BASE_URL = os.getenv("SMS_BASE_URL", "https://rest.smsportal.com").rstrip("/")
BULK_PATH = "/BulkMessages"
BALANCE_PATH = "/v1/Balance"

COUNTRY_PREFIX = "27"
LOCAL_DIGITS = 9
PHONE_KEYS = ("cellphone_number", "phone", "contact_number", "mobile")

_NON_DIGITS = re.compile(r"\D")


def normalize_number(phone: Any) -> str:
    """
    Reduce a phone number to `27XXXXXXXXX` digits (no plus sign).

    Best effort: unrecognised shapes come back as bare digits; empty input
    gives "".
    """
    if phone is None:
        return ""
    digits = _NON_DIGITS.sub("", str(phone))
    if not digits:
        return ""
    if digits.startswith(COUNTRY_PREFIX):
        return digits
    if digits.startswith("0"):
        return COUNTRY_PREFIX + digits[1:]
    if len(digits) == LOCAL_DIGITS:
        return COUNTRY_PREFIX + digits
    return digits


def recipient_number(recipient: Any) -> Any:
    if isinstance(recipient, dict):
        return next((recipient[k] for k in PHONE_KEYS if recipient.get(k)), None)
    return recipient


def build_messages(message: str, recipients: list[Any], options: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
    """One message per recipient; recipients without a usable number are dropped."""
    options = options or {}
    content = str(message).strip()
    messages = []
    for recipient in recipients:
        destination = normalize_number(recipient_number(recipient))
        if not destination:
            continue
        msg: dict[str, Any] = {"content": content, "destination": destination}
        if options.get("scheduledFor"):
            msg["sendTime"] = options["scheduledFor"]
        if options.get("reference"):
            msg["reference"] = options["reference"]
        messages.append(msg)
    return messages


def build_bulk_payload(messages: list[dict[str, Any]], options: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    options = options or {}
    payload: dict[str, Any] = {"messages": messages, "testMode": bool(options.get("testMode"))}
    if options.get("senderId"):
        payload["senderId"] = options["senderId"]
    return payload


def basic_auth_header(client_id: str, client_secret: str) -> str:
    token = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class SmsPortalAdapter:
    def __init__(
        self,
        credentials: CredentialSet,
        base_url: str = SMS_BASE_URL,
        sender: Callable[..., OutboundResult] = dispatch,
    ) -> None:
        if not credentials.sms_client_id or not credentials.sms_client_secret:
            raise MissingCredentialError(
                "Missing SMS credentials",
                hint=(
                    "Set SMS_CLIENT_ID and SMS_CLIENT_SECRET as environment variables "
                    "(or secrets.local.json for local dev)."
                ),
            )
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self._send = sender

    @classmethod
    def from_environment(cls, **kwargs: Any) -> "SmsPortalAdapter":
        return cls(resolve_sms_credentials(), **kwargs)

    def forward(self, method: str, path: str, body: Any = None) -> OutboundResult:
        """Relay `method path` to the vendor; non-GET requests carry `body` as JSON."""
        url = f"{self.base_url}{path or ''}"
        logger.info("sms.forward", extra={"fields": {"method": method, "url": url, "has_auth": True}})
        headers = {
            "Content-Type": "application/json",
            "Authorization": basic_auth_header(self.credentials.sms_client_id, self.credentials.sms_client_secret),
        }
        json_body = None
        if method.upper() != "GET":
            json_body = {} if body is None else body
        return self._send(method.upper(), url, headers=headers, json_body=json_body)

    def send_bulk(self, payload: dict[str, Any]) -> OutboundResult:
        return self.forward("POST", BULK_PATH, payload)

    def balance(self) -> OutboundResult:
        return self.forward("GET", BALANCE_PATH)
