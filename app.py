"""
RS relay - keeps vendor credentials off the front-end.

Run:
  pip install -e .
  uvicorn app:app --reload --host 0.0.0.0 --port 3001
"""

import json
import os
import traceback
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from integrations.credentials import env_detection_flags, load_local_secrets, resolve_mie_credentials
from integrations.errors import MissingCredentialError, MissingFieldError, RelayError
from integrations.logger import get_logger
from integrations.mie_adapter import MieAdapter, MiePayload
from integrations.outbound import OutboundResult
from integrations.smsportal_adapter import SmsPortalAdapter, build_bulk_payload, build_messages

# -----------------------------------------------------------------------------
# Config
# -----------------------------------------------------------------------------
APP_VERSION = "1.0"
SERVICE_NAME = "rs-local-proxy"
APP_ENV = os.getenv("APP_ENV", "development").lower()
PORT = int(os.getenv("PORT", "3001"))
HOST = os.getenv("HOST", "0.0.0.0")
FORCE_HTTPS = os.getenv("FORCE_HTTPS", "0") == "1"
ENABLE_DOCS = os.getenv("ENABLE_DOCS", "1" if APP_ENV != "production" else "0") == "1"
TRUSTED_HOSTS = [h.strip() for h in os.getenv("TRUSTED_HOSTS", "*").split(",") if h.strip()] or ["*"]
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()] or ["*"]
MAX_BODY_BYTES = int(os.getenv("MAX_BODY_BYTES", str(1024 * 1024)))
IS_HOSTED = bool(os.getenv("RENDER"))

PASSTHROUGH_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

logger = get_logger("relay")

app = FastAPI(
    title="RS Relay",
    version=APP_VERSION,
    docs_url="/docs" if ENABLE_DOCS else None,
    redoc_url="/redoc" if ENABLE_DOCS else None,
    openapi_url="/openapi.json" if ENABLE_DOCS else None,
)
app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=TRUSTED_HOSTS)
app.add_middleware(CORSMiddleware, allow_origins=CORS_ORIGINS, allow_methods=["*"], allow_headers=["*"])
if FORCE_HTTPS:
    app.add_middleware(HTTPSRedirectMiddleware)


@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    length = request.headers.get("content-length", "")
    if length.isdigit() and int(length) > MAX_BODY_BYTES:
        return JSONResponse({"ok": False, "error": "Request body too large"}, status_code=413)
    return await call_next(request)


# -----------------------------------------------------------------------------
# Request bodies
# -----------------------------------------------------------------------------
class MieRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    method: Optional[str] = None
    soap_url: Optional[str] = Field(default=None, alias="soapUrl")
    username: Optional[str] = None
    password: Optional[str] = None
    client_key: Optional[str] = Field(default=None, alias="clientKey")
    agent_key: Optional[str] = Field(default=None, alias="agentKey")
    source: Optional[str] = None
    payload: Optional[MiePayload] = None
    a_logon_xml: Optional[str] = Field(default=None, alias="aLogonXml")
    a_argument: Optional[str] = Field(default=None, alias="aArgument")


class SmsSendRequest(BaseModel):
    message: Any = None
    recipients: Any = None
    options: Any = None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _error_message(ex: Exception) -> str:
    return str(ex) or ex.__class__.__name__


def _relay_response(result: OutboundResult) -> Response:
    if result.is_json:
        try:
            return JSONResponse(json.loads(result.text) if result.text else None, status_code=result.status_code)
        except ValueError:
            pass
    return Response(
        content=result.text,
        status_code=result.status_code,
        media_type=result.content_type or "text/plain",
    )


def _forward_sms(call: Callable[[SmsPortalAdapter], OutboundResult]) -> Response:
    try:
        adapter = SmsPortalAdapter.from_environment()
        return _relay_response(call(adapter))
    except RelayError as ex:
        return JSONResponse(ex.to_payload("ok"), status_code=ex.status_code)
    except Exception as ex:
        logger.exception("sms.proxy_error")
        return JSONResponse(
            {"ok": False, "error": _error_message(ex), "stack": traceback.format_exc()},
            status_code=500,
        )


@app.exception_handler(RequestValidationError)
async def invalid_body(request: Request, exc: RequestValidationError):
    # Malformed bodies get the same error shape as the handlers' own 400s.
    first = (exc.errors() or [{}])[0]
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or "body"
    flag = "success" if request.url.path == "/api/sms/send" else "ok"
    logger.warning("relay.invalid_body", extra={"fields": {"path": request.url.path, "loc": where}})
    return JSONResponse(
        {flag: False, "error": f"Invalid request body: {where}: {first.get('msg', 'invalid')}"},
        status_code=400,
    )


def _parse_json_body(raw: bytes) -> Any:
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return {}


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------
@app.get("/health")
def health():
    return {
        "ok": True,
        "service": SERVICE_NAME,
        "port": PORT,
        "time": _now_iso(),
        "cwd": os.getcwd(),
        "secretsFileDetected": load_local_secrets() is not None,
        "envVariablesDetected": env_detection_flags(),
    }


@app.post("/api/mie")
def api_mie(body: Optional[MieRequest] = None):
    body = body or MieRequest()
    try:
        if not body.method:
            raise MissingFieldError("method")
        if not body.soap_url:
            raise MissingFieldError("soapUrl")

        credentials = resolve_mie_credentials(
            username=body.username,
            password=body.password,
            client_key=body.client_key,
            agent_key=body.agent_key,
        )
        if not credentials.password:
            raise MissingCredentialError(
                "Missing MIE password",
                hint='Set MIE_PASSWORD as an environment variable OR add secrets.local.json with { "MIE_PASSWORD": "..." }',
            )

        return MieAdapter(body.soap_url).call(
            body.method,
            credentials,
            body.payload or MiePayload(),
            source=body.source,
            logon_xml=body.a_logon_xml,
            argument_xml=body.a_argument,
        )
    except RelayError as ex:
        return JSONResponse(ex.to_payload("ok"), status_code=ex.status_code)
    except Exception as ex:
        logger.exception("mie.proxy_error")
        return JSONResponse({"ok": False, "error": _error_message(ex)}, status_code=500)


@app.post("/api/sms/send")
def api_sms_send(body: Optional[SmsSendRequest] = None):
    body = body or SmsSendRequest()
    try:
        if not body.message or not str(body.message).strip():
            return JSONResponse({"success": False, "error": "Message cannot be empty"}, status_code=400)
        if not isinstance(body.recipients, list) or not body.recipients:
            return JSONResponse({"success": False, "error": "No recipients specified"}, status_code=400)

        options = body.options if isinstance(body.options, dict) else {}
        messages = build_messages(body.message, body.recipients, options)
        if not messages:
            return JSONResponse({"success": False, "error": "No valid recipient numbers found"}, status_code=400)

        payload = build_bulk_payload(messages, options)
        logger.info("sms.send", extra={"fields": {"recipients": len(messages), "test_mode": payload["testMode"]}})
        return _forward_sms(lambda adapter: adapter.send_bulk(payload))
    except Exception as ex:
        logger.exception("sms.send_error")
        return JSONResponse(
            {"success": False, "error": _error_message(ex), "type": "proxy_error"},
            status_code=500,
        )


@app.get("/api/sms/test")
def api_sms_test():
    return _forward_sms(lambda adapter: adapter.balance())


@app.api_route("/api/sms", methods=PASSTHROUGH_METHODS)
@app.api_route("/api/sms/{sms_path:path}", methods=PASSTHROUGH_METHODS)
async def api_sms_passthrough(request: Request):
    path = request.url.path[len("/api/sms"):]
    if request.url.query:
        path = f"{path}?{request.url.query}"
    body = None
    if request.method != "GET":
        body = _parse_json_body(await request.body())
    return await run_in_threadpool(_forward_sms, lambda adapter: adapter.forward(request.method, path, body))


@app.on_event("startup")
def log_startup():
    logger.info(
        "relay.startup",
        extra={"fields": {
            "service": SERVICE_NAME,
            "listening": f"http://{HOST}:{PORT}",
            "health": f"http://{HOST}:{PORT}/health",
            "environment": "Render.com" if IS_HOSTED else "Local",
        }},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host=HOST, port=PORT, reload=APP_ENV != "production")
