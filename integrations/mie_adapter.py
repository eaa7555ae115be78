"""
MIE (Kroll) background-check SOAP adapter.

Design goals:
- Vendor-exact: fragment element order below is part of the vendor contract
  and must not be rearranged.
- Thin: one envelope, one POST, one scrape of the `<Method>Result` element.
- Overridable: callers may send their own `aLogonXml` / `aArgument`
  fragments, which are then used verbatim.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from integrations.credentials import CredentialSet
from integrations.errors import VendorHTTPError
from integrations.logger import get_logger
from integrations.outbound import OutboundResult, dispatch
from integrations.soap import REQUEST_KEY, TagTextExtractor, TextExtractor, build_envelope, soap_action

logger = get_logger("mie")

MIE_NAMESPACE = "http://www.kroll.co.za/"

# Only these methods take the request fragment; everything else is logon-only.
ARGUMENT_METHODS = frozenset({"ksoputrequest", "ksoputbranch", "ksoputrequestredirect"})


class MiePayload(BaseModel):
    """Identity fields for a check request. Absent values render as empty elements."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    check_types: list[str] = Field(default_factory=list, alias="checkTypes")
    remote_key: Optional[str] = Field(default=None, alias="remoteKey")
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    id_number: Optional[str] = Field(default=None, alias="idNumber")
    date_of_birth: Optional[str] = Field(default=None, alias="dateOfBirth")
    phone: Optional[str] = None
    email: Optional[str] = None
    source: Optional[str] = None
    indemnity_acknowledged: bool = Field(default=False, alias="indemnityAcknowledged")

    @field_validator("check_types", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(v) for v in value if v is not None]

    @field_validator("indemnity_acknowledged", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)


def _iso_now(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_remote_key() -> str:
    return f"RS_{int(time.time() * 1000)}"


def includes_argument(method: str) -> bool:
    return str(method).lower() in ARGUMENT_METHODS


def build_logon_xml(username: Optional[str], password: Optional[str], source: Optional[str]) -> str:
    return (
        "<xml><Token>"
        f"<UserName>{username or ''}</UserName>"
        f"<Password>{password or ''}</Password>"
        f"<Source>{source or ''}</Source>"
        "</Token></xml>"
    )


def build_request_xml(
    credentials: CredentialSet,
    payload: MiePayload,
    source: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    client_key = credentials.client_key or ""
    agent_key = credentials.agent_key or ""
    stamp = _iso_now(now)
    indemnity = "true" if payload.indemnity_acknowledged else "false"

    items = "".join(
        "<Item>"
        "<RemoteItemKey></RemoteItemKey>"
        f"<ItemTypeCode>{str(check).upper()}</ItemTypeCode>"
        f"<Indemnity>{indemnity}</Indemnity>"
        "<ItemInputGroupList></ItemInputGroupList>"
        "</Item>"
        for check in payload.check_types
    )

    return (
        "<xml><Request>"
        f"<ClientKey>{client_key}</ClientKey>"
        f"<AgentClient>{client_key}</AgentClient>"
        f"<AgentKey>{agent_key}</AgentKey>"
        f"<RemoteRequest>{payload.remote_key or default_remote_key()}</RemoteRequest>"
        "<OrderNumber></OrderNumber>"
        "<RequestReason></RequestReason>"
        "<Note></Note>"
        f"<FirstNames>{payload.first_name or ''}</FirstNames>"
        f"<Surname>{payload.last_name or ''}</Surname>"
        "<MaidenName></MaidenName>"
        f"<IdNumber>{payload.id_number or ''}</IdNumber>"
        "<Passport></Passport>"
        f"<DateOfBirth>{payload.date_of_birth or ''}</DateOfBirth>"
        f"<ContactNumber>{payload.phone or ''}</ContactNumber>"
        f"<PersonEmail>{payload.email or ''}</PersonEmail>"
        "<AlternateEmail></AlternateEmail>"
        f"<Source>{payload.source or source or ''}</Source>"
        "<EntityKind>P</EntityKind>"
        f"<RemoteCaptureDate>{stamp}</RemoteCaptureDate>"
        f"<RemoteSendDate>{stamp}</RemoteSendDate>"
        "<RemoteGroup></RemoteGroup>"
        "<PrerequisiteGroupList></PrerequisiteGroupList>"
        "<PrerequisiteImageList></PrerequisiteImageList>"
        f"<ItemList>{items}</ItemList>"
        "</Request></xml>"
    )


class MieAdapter:
    """One SOAP call against a caller-supplied MIE endpoint."""

    def __init__(
        self,
        soap_url: str,
        namespace: str = MIE_NAMESPACE,
        sender: Callable[..., OutboundResult] = dispatch,
        result_extractor: Optional[TextExtractor] = None,
        key_extractor: TextExtractor = REQUEST_KEY,
    ) -> None:
        self.soap_url = soap_url
        self.namespace = namespace
        self._send = sender
        # None: read the `<Method>Result` element of whichever method is called
        self.result_extractor = result_extractor
        self.key_extractor = key_extractor

    def build_envelope(
        self,
        method: str,
        credentials: CredentialSet,
        payload: MiePayload,
        source: Optional[str] = None,
        logon_xml: Optional[str] = None,
        argument_xml: Optional[str] = None,
    ) -> str:
        arguments = [("aLogonXml", logon_xml or build_logon_xml(credentials.username, credentials.password, source))]
        if includes_argument(method):
            arguments.append(("aArgument", argument_xml or build_request_xml(credentials, payload, source)))
        return build_envelope(method, self.namespace, arguments)

    def call(
        self,
        method: str,
        credentials: CredentialSet,
        payload: MiePayload,
        source: Optional[str] = None,
        logon_xml: Optional[str] = None,
        argument_xml: Optional[str] = None,
    ) -> dict[str, Any]:
        action = soap_action(self.namespace, method)
        logger.info(
            "mie.request",
            extra={"fields": {
                "method": method,
                "soap_url": self.soap_url,
                "check_types": payload.check_types,
                "indemnity_acknowledged": payload.indemnity_acknowledged,
            }},
        )
        envelope = self.build_envelope(method, credentials, payload, source, logon_xml, argument_xml)
        resp = self._send(
            "POST",
            self.soap_url,
            headers={
                "Content-Type": "text/xml; charset=utf-8",
                "SOAPAction": action,
                "Accept": "text/xml",
            },
            data=envelope,
        )

        if not resp.ok:
            logger.warning("mie.vendor_error", extra={"fields": {"status": resp.status_code, "method": method}})
            raise VendorHTTPError(
                f"MIE SOAP HTTP {resp.status_code}",
                soapAction=action,
                soapUrl=self.soap_url,
                responseSnippet=resp.snippet(),
            )

        result_extractor = self.result_extractor or TagTextExtractor(f"{method}Result")
        result = result_extractor.extract(resp.text)
        request_key = self.key_extractor.extract(result)
        return {
            "ok": True,
            "method": method,
            "soapAction": action,
            "requestKey": request_key or None,
            "reference": request_key or None,
            "result": result or None,
            "rawSoapResponse": resp.text,
        }
