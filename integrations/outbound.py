"""
Outbound dispatcher: exactly one HTTP call per relay request, no retries.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

import requests

from integrations.logger import get_logger

logger = get_logger("outbound")

SNIPPET_LIMIT = 2000


def _timeout() -> Optional[float]:
    raw = os.getenv("RELAY_HTTP_TIMEOUT", "").strip()
    return float(raw) if raw else None


@dataclass
class OutboundResult:
    status_code: int
    text: str
    content_type: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type.lower()

    def snippet(self, limit: int = SNIPPET_LIMIT) -> str:
        return self.text[:limit]


def dispatch(
    method: str,
    url: str,
    headers: Optional[dict[str, str]] = None,
    data: Optional[str] = None,
    json_body: Any = None,
) -> OutboundResult:
    """
    Send one request and capture status, body text and content type.

    Network errors propagate as `requests.RequestException`; callers turn
    them into 500 responses.
    """
    logger.info("outbound.request", extra={"fields": {"method": method, "url": url}})
    kwargs: dict[str, Any] = {"headers": headers or {}, "timeout": _timeout()}
    if data is not None:
        kwargs["data"] = data.encode("utf-8")
    elif json_body is not None:
        kwargs["json"] = json_body

    resp = requests.request(method, url, **kwargs)
    result = OutboundResult(
        status_code=resp.status_code,
        text=resp.text,
        content_type=resp.headers.get("content-type", ""),
    )
    logger.info("outbound.response", extra={"fields": {"url": url, "status": result.status_code}})
    return result
