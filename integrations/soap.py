"""
Hand-built SOAP envelopes and best-effort reply scraping.

The vendor service is picky about element order and does not publish a
usable WSDL, so envelopes are assembled as strings rather than through an
XML library. Replies are read with ordered pattern fallbacks; callers only
depend on the `TextExtractor` protocol so a real parser can replace these.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Protocol

CDATA_END = "]]>"
CDATA_SPLIT = "]]]]><![CDATA[>"

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XSD_NS = "http://www.w3.org/2001/XMLSchema"


def cdata_wrap(value: object) -> str:
    """Wrap `value` in a CDATA section, splitting any embedded `]]>`."""
    text = "" if value is None else str(value)
    return f"<![CDATA[{text.replace(CDATA_END, CDATA_SPLIT)}]]>"


def soap_action(namespace: str, method: str) -> str:
    return f"{namespace.rstrip('/')}/{method}"


def build_envelope(method: str, namespace: str, arguments: Iterable[tuple[str, str]]) -> str:
    """
    Envelope with one `<method xmlns=namespace>` element whose children are
    the given (name, fragment) pairs, each fragment CDATA-wrapped.
    """
    body = "".join(f"<{name}>{cdata_wrap(fragment)}</{name}>" for name, fragment in arguments)
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<soap:Envelope xmlns:xsi="{XSI_NS}" xmlns:xsd="{XSD_NS}" xmlns:soap="{SOAP_ENV_NS}">'
        "<soap:Body>"
        f'<{method} xmlns="{namespace}">'
        f"{body}"
        f"</{method}>"
        "</soap:Body>"
        "</soap:Envelope>"
    )


# -----------------------------------------------------------------------------
# Extraction
# -----------------------------------------------------------------------------
class TextExtractor(Protocol):
    def extract(self, text: Optional[str]) -> Optional[str]:
        ...


class TagTextExtractor:
    """Inner text of the first `<tag ...>...</tag>`, case-insensitive."""

    def __init__(self, tag: str) -> None:
        self.tag = tag
        name = re.escape(tag)
        self._pattern = re.compile(rf"<{name}[^>]*>([\s\S]*?)</{name}>", re.IGNORECASE)

    def extract(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return None
        m = self._pattern.search(text)
        return m.group(1) if m else None


class FallbackExtractor:
    """First group of the first pattern that matches, stripped."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns = [re.compile(p, re.IGNORECASE) for p in patterns]

    def extract(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return None
        for pattern in self._patterns:
            m = pattern.search(str(text))
            if m and m.group(1):
                return m.group(1).strip()
        return None


def key_extractor(key: str) -> FallbackExtractor:
    """Element, attribute and `key: value` spellings of the same token, in that order."""
    name = re.escape(key)
    return FallbackExtractor([
        rf"<{name}>([^<]+)</{name}>",
        rf'{name}\s*=\s*"([^"]+)"',
        rf"{name}\s*:\s*([A-Za-z0-9_-]+)",
    ])


REQUEST_KEY = key_extractor("RequestKey")
