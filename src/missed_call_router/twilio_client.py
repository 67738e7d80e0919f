from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import requests
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from .config import Settings
from .errors import ConfigurationError, SendError

logger = logging.getLogger(__name__)


class MessagingGateway(Protocol):
    def send_template(
        self, *, from_: str, to: str, template_id: str, variables: Mapping[str, str]
    ) -> str | None: ...

    def send_text(self, *, from_: str, to: str, body: str) -> str | None: ...


class UnconfiguredGateway:
    """Stands in when Twilio credentials are missing so every send fails loudly."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def send_template(
        self, *, from_: str, to: str, template_id: str, variables: Mapping[str, str]
    ) -> str | None:
        raise ConfigurationError(self.reason)

    def send_text(self, *, from_: str, to: str, body: str) -> str | None:
        raise ConfigurationError(self.reason)


def get_twilio_client(settings: Settings) -> Client:
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ConfigurationError(
            "Twilio credentials are not configured (TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN)"
        )

    return Client(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        http_client=TwilioHttpClient(timeout=settings.http_timeout_seconds),
    )


class TwilioGateway:
    """
    Outbound messages via the Twilio REST API.

    Sends are fire-and-forget: the message SID is returned for logging but
    delivery receipts are never awaited. Any Twilio or transport failure is
    raised as SendError.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> TwilioGateway:
        return cls(get_twilio_client(settings))

    def _create(self, **params: Any) -> str | None:
        try:
            message = self.client.messages.create(**params)
        except (TwilioException, requests.RequestException) as exc:
            raise SendError(f"Twilio send to {params.get('to')} failed: {exc}") from exc

        sid = getattr(message, "sid", None)
        logger.info("Twilio message queued: %s", sid, extra={"stage": "send"})
        return sid

    def send_template(
        self, *, from_: str, to: str, template_id: str, variables: Mapping[str, str]
    ) -> str | None:
        return self._create(
            from_=from_,
            to=to,
            content_sid=template_id,
            content_variables=json.dumps(dict(variables)),
        )

    def send_text(self, *, from_: str, to: str, body: str) -> str | None:
        return self._create(from_=from_, to=to, body=body)

    def verify_credentials(self, account_sid: str) -> bool:
        """Fetch the account once so bad credentials show up in the startup logs."""
        try:
            account = self.client.api.accounts(account_sid).fetch()
        except (TwilioException, requests.RequestException) as exc:
            logger.error("Twilio auth FAILED: %s", exc, extra={"stage": "startup"})
            return False

        logger.info("Twilio auth OK for: %s", account.friendly_name, extra={"stage": "startup"})
        return True
