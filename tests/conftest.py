from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from missed_call_router.config import Settings, get_settings
from missed_call_router.errors import ConfigurationError, RecordStoreError, SendError

TWILIO_NUMBER = "+441234567890"
CUSTOMER = "+447700900123"


class FakeStore:
    """In-memory stand-in for the Airtable store."""

    profiles_table = "Electricians List"
    log_table = "Missed Calls Log"

    def __init__(
        self,
        profiles: list[dict[str, Any]] | None = None,
        *,
        configured: bool = True,
        failing_tables: set[str] | None = None,
        fail_writes: bool = False,
    ) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            self.profiles_table: list(profiles or []),
            self.log_table: [],
        }
        self._configured = configured
        self.failing_tables = failing_tables or set()
        self.fail_writes = fail_writes
        self.queries: list[tuple[str, str, str]] = []
        self.write_attempts = 0

    @property
    def configured(self) -> bool:
        return self._configured

    def require_configured(self) -> None:
        if not self._configured:
            raise ConfigurationError("Airtable not configured")

    def query_first(self, table: str, field: str, value: str) -> dict[str, Any] | None:
        self.require_configured()
        self.queries.append((table, field, value))
        if table in self.failing_tables:
            raise RecordStoreError("Airtable HTTP 503")
        for record in self.tables[table]:
            if record["fields"].get(field) == value:
                return record
        return None

    def create_record(self, table: str, fields: dict[str, Any]) -> str | None:
        self.require_configured()
        self.write_attempts += 1
        if self.fail_writes:
            raise RecordStoreError("Airtable HTTP 422")
        record_id = f"recLog{len(self.tables[table]) + 1}"
        self.tables[table].append({"id": record_id, "fields": fields})
        return record_id

    @property
    def log_rows(self) -> list[dict[str, Any]]:
        return [r["fields"] for r in self.tables[self.log_table]]


class FakeGateway:
    """Records sends; can be told to fail template or text sends."""

    def __init__(self, *, fail_template: bool = False, fail_text: bool = False) -> None:
        self.fail_template = fail_template
        self.fail_text = fail_text
        self.templates: list[dict[str, Any]] = []
        self.texts: list[dict[str, Any]] = []

    def send_template(
        self, *, from_: str, to: str, template_id: str, variables: Mapping[str, str]
    ) -> str | None:
        if self.fail_template:
            raise SendError("Twilio send failed HTTP 400")
        self.templates.append(
            {"from_": from_, "to": to, "template_id": template_id, "variables": dict(variables)}
        )
        return f"SM{len(self.templates)}"

    def send_text(self, *, from_: str, to: str, body: str) -> str | None:
        if self.fail_text:
            raise SendError("Twilio send failed HTTP 400")
        self.texts.append({"from_": from_, "to": to, "body": body})
        return f"SM{len(self.texts)}"


def profile_record(
    record_id: str = "recSpark1",
    *,
    channel: str | None = "WhatsApp",
    whatsapp: str | None = "+447700900001",
    mobile: str | None = "+447700900002",
    business: str | None = "Sparks Electrical",
    twilio_number: str = TWILIO_NUMBER,
) -> dict[str, Any]:
    fields: dict[str, Any] = {"Twilio Number": twilio_number, "Electrician ID": "E-001"}
    if channel is not None:
        fields["Preferred Alert Channel"] = channel
    if whatsapp is not None:
        fields["WhatsApp Number"] = whatsapp
    if mobile is not None:
        fields["Electrician Mobile"] = mobile
    if business is not None:
        fields["Business Name"] = business
    return {"id": record_id, "fields": fields}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        airtable_token="patTEST",
        airtable_base_id="appTEST",
        twilio_account_sid="ACTEST",
        twilio_auth_token="auth-token",
        template_sid="HXTEMPLATE",
        whatsapp_from="whatsapp:+14155238886",
        twilio_webhook_url=None,
        twilio_validate_signature=False,
        admin_token="admin-secret",
    )


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    get_settings.cache_clear()
