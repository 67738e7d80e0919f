from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Form, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from twilio.request_validator import RequestValidator

from .config import Settings, get_settings
from .errors import ConfigurationError, RecordStoreError
from .logs import configure_logging
from .pipeline import handle_inbound
from .sms import EMPTY_TWIML, InboundMessage
from .store import AirtableStore, RecordStore
from .twilio_client import MessagingGateway, TwilioGateway, UnconfiguredGateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: build the long-lived HTTP handles once and share them across requests
    settings = get_settings()
    configure_logging(settings.log_level)

    store = AirtableStore.from_settings(settings)
    if not store.configured:
        logger.warning("Airtable not configured; lookups and logging will fail")

    gateway: MessagingGateway
    try:
        twilio_gateway = TwilioGateway.from_settings(settings)
    except ConfigurationError as exc:
        logger.warning("%s; alerts will fail", exc)
        gateway = UnconfiguredGateway(str(exc))
    else:
        twilio_gateway.verify_credentials(settings.twilio_account_sid or "")
        gateway = twilio_gateway

    app.state.store = store
    app.state.gateway = gateway
    yield
    # Shutdown
    store.close()


app = FastAPI(title="missed-call-router", version="0.1.0", lifespan=lifespan)

ALLOWED_ADMIN_IPS = {"127.0.0.1", "::1"}


def verify_admin(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """
    Simple protection for /debug endpoints:
    - only allow requests from ALLOWED_ADMIN_IPS
    - require X-Admin-Token header that matches ADMIN_TOKEN env var
    """
    client_host = request.client.host if request.client else None

    if client_host not in ALLOWED_ADMIN_IPS:
        raise HTTPException(status_code=403, detail="Forbidden")

    if not settings.admin_token:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")

    header_token = request.headers.get("X-Admin-Token")
    if header_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


async def verify_twilio_signature(
    request: Request, settings: Settings = Depends(get_settings)
) -> None:
    """
    Reject webhook calls that were not signed by our Twilio account.

    The signature covers the public URL Twilio was configured with, which can
    differ from request.url behind a tunnel or proxy (TWILIO_WEBHOOK_URL).
    """
    if not settings.twilio_validate_signature:
        return

    if not settings.twilio_auth_token:
        raise HTTPException(status_code=500, detail="TWILIO_AUTH_TOKEN not configured")

    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    url = settings.twilio_webhook_url or str(request.url)
    signature = request.headers.get("X-Twilio-Signature", "")

    if not RequestValidator(settings.twilio_auth_token).validate(url, params, signature):
        logger.warning("Rejected webhook with invalid Twilio signature", extra={"stage": "http"})
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")


# --- Dependencies ---


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_gateway(request: Request) -> MessagingGateway:
    return request.app.state.gateway


# --- Routes ---


@app.get("/")
def health() -> PlainTextResponse:
    return PlainTextResponse("OK")


@app.post("/sms", dependencies=[Depends(verify_twilio_signature)])
def sms_inbound(
    From_: str = Form("", alias="From"),
    To: str = Form("", alias="To"),
    Body: str | None = Form(None, alias="Body"),
    MessageSid: str | None = Form(None, alias="MessageSid"),
    store: RecordStore = Depends(get_store),
    gateway: MessagingGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
) -> Response:
    """
    Twilio SMS webhook for missed-call replies.

    Behaviour:
      - route the enquiry to the tradesperson who owns the "To" number
      - always return 200 with empty TwiML; Twilio retries anything else, and
        failures are only visible in the logs and the audit table
    """
    message = InboundMessage.from_twilio_form(from_=From_, to=To, body=Body, message_sid=MessageSid)
    handle_inbound(message, store=store, gateway=gateway, settings=settings)

    return Response(content=EMPTY_TWIML, media_type="application/xml")


@app.get("/debug/airtable-fields", dependencies=[Depends(verify_admin)])
def debug_airtable_fields(store: RecordStore = Depends(get_store)) -> JSONResponse:
    """Field names and types of the log table, for checking column names."""
    try:
        schema = store.table_schema(store.log_table)
    except (ConfigurationError, RecordStoreError) as exc:
        return JSONResponse({"error": str(exc)}, status_code=500)

    if schema["table"] is None:
        return JSONResponse(
            {
                "error": "Table not found in base meta",
                "lookingFor": store.log_table,
                "availableTables": schema["available_tables"],
            },
            status_code=404,
        )

    return JSONResponse(schema)
