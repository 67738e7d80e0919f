"""Airtable REST client used for profile lookup and the audit log."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Protocol
from urllib.parse import quote

import requests

from .config import Settings
from .errors import ConfigurationError, RecordStoreError

logger = logging.getLogger(__name__)

AIRTABLE_API_URL = "https://api.airtable.com/v0"


class RecordStore(Protocol):
    """The subset of the record store the routing pipeline depends on."""

    profiles_table: str
    log_table: str

    @property
    def configured(self) -> bool: ...

    def require_configured(self) -> None: ...

    def query_first(self, table: str, field: str, value: str) -> dict[str, Any] | None: ...

    def create_record(self, table: str, fields: dict[str, Any]) -> str | None: ...

    def table_schema(self, table: str) -> dict[str, Any]: ...


def escape_formula_value(value: str) -> str:
    return str(value).replace('"', '\\"')


def equals_formula(field: str, value: str) -> str:
    """Build a filterByFormula expression matching one field exactly."""
    return f'{{{field}}} = "{escape_formula_value(value)}"'


class AirtableStore:
    def __init__(
        self,
        *,
        token: str | None,
        base_id: str | None,
        profiles_table: str,
        log_table: str,
        timeout: float = 15.0,
        api_url: str = AIRTABLE_API_URL,
    ) -> None:
        self.token = token
        self.base_id = base_id
        self.profiles_table = profiles_table
        self.log_table = log_table
        self.timeout = timeout
        self.api_url = api_url.rstrip("/")
        self.session = requests.Session()
        if token:
            self.session.headers.update(
                {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> AirtableStore:
        return cls(
            token=settings.airtable_token,
            base_id=settings.airtable_base_id,
            profiles_table=settings.airtable_profiles_table,
            log_table=settings.airtable_log_table,
            timeout=settings.http_timeout_seconds,
        )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> AirtableStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def configured(self) -> bool:
        return bool(self.token and self.base_id)

    def require_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError(
                "Airtable not configured (AIRTABLE_TOKEN / AIRTABLE_BASE_ID)"
            )

    def table_url(self, table: str) -> str:
        return f"{self.api_url}/{self.base_id}/{quote(table, safe='')}"

    def _request_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.session.request(method=method, url=url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise RecordStoreError(f"Airtable request failed: {exc}") from exc

        if response.status_code >= 400:
            raise RecordStoreError(
                f"Airtable HTTP {response.status_code}: {response.text[:300]}"
            )

        try:
            return response.json()
        except ValueError as exc:
            raise RecordStoreError(f"Invalid JSON payload from {url}") from exc

    def query_first(self, table: str, field: str, value: str) -> dict[str, Any] | None:
        """Return the first record whose ``field`` equals ``value``, or None."""
        self.require_configured()
        payload = self._request_json(
            "GET",
            self.table_url(table),
            params={"filterByFormula": equals_formula(field, value), "maxRecords": 1},
        )
        records = payload.get("records") or []
        return records[0] if records else None

    def create_record(self, table: str, fields: dict[str, Any]) -> str | None:
        """Append one record and return its Airtable id."""
        self.require_configured()
        payload = self._request_json(
            "POST",
            self.table_url(table),
            json={"records": [{"fields": fields}]},
        )
        records = payload.get("records") or []
        record_id = records[0].get("id") if records else None
        logger.info(
            "Airtable record created in %s: %s", table, record_id, extra={"stage": "store"}
        )
        return record_id

    def table_schema(self, table: str) -> dict[str, Any]:
        """
        Describe one table's fields via the metadata API.

        Returns ``{"table": name, "fields": [{"name", "type"}]}`` when found, or
        ``{"table": None, "available_tables": [...]}`` when the base has no such table.
        """
        self.require_configured()
        payload = self._request_json("GET", f"{self.api_url}/meta/bases/{self.base_id}/tables")
        tables = payload.get("tables") or []

        for t in tables:
            if t.get("name") == table:
                return {
                    "table": t["name"],
                    "fields": [
                        {"name": f.get("name"), "type": f.get("type")} for f in t.get("fields", [])
                    ],
                }

        return {"table": None, "available_tables": [t.get("name") for t in tables]}
