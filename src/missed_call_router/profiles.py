from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .classifier import WHITESPACE_RE
from .errors import RecordLookupError, RecordStoreError
from .store import RecordStore

logger = logging.getLogger(__name__)

# Column names in the profiles table.
TWILIO_NUMBER_FIELD = "Twilio Number"
BUSINESS_NAME_FIELD = "Business Name"
PREFERRED_CHANNEL_FIELD = "Preferred Alert Channel"
WHATSAPP_NUMBER_FIELD = "WhatsApp Number"
MOBILE_FIELD = "Electrician Mobile"
EXTERNAL_ID_FIELD = "Electrician ID"

DEFAULT_BUSINESS_NAME = "New enquiry"


def normalise_address(address: str | None) -> str:
    """Strip all whitespace from a phone number ("+44 7700 900123" -> "+447700900123")."""
    return WHITESPACE_RE.sub("", address or "")


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class TradespersonProfile:
    record_id: str
    business_name: str
    preferred_channel: str | None
    whatsapp_address: str | None
    mobile_address: str | None
    external_id: str | None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> TradespersonProfile:
        fields = record.get("fields") or {}
        return cls(
            record_id=record["id"],
            business_name=_optional_str(fields.get(BUSINESS_NAME_FIELD)) or DEFAULT_BUSINESS_NAME,
            preferred_channel=_optional_str(fields.get(PREFERRED_CHANNEL_FIELD)),
            whatsapp_address=_optional_str(fields.get(WHATSAPP_NUMBER_FIELD)),
            mobile_address=_optional_str(fields.get(MOBILE_FIELD)),
            external_id=_optional_str(fields.get(EXTERNAL_ID_FIELD)),
        )


def find_profile_by_destination(
    store: RecordStore, destination_address: str | None
) -> TradespersonProfile | None:
    """
    Resolve the Twilio number a message was sent to into a tradesperson profile.

    - raises ConfigurationError before any request when credentials are missing
    - returns None when no profile is registered for the number
    - raises RecordLookupError when the query itself fails
    """
    store.require_configured()
    to = normalise_address(destination_address)

    try:
        record = store.query_first(store.profiles_table, TWILIO_NUMBER_FIELD, to)
    except RecordStoreError as exc:
        raise RecordLookupError(f"Profile lookup failed for {to}: {exc}") from exc

    if record is None:
        logger.info("No profile registered for %s", to, extra={"stage": "lookup"})
        return None

    return TradespersonProfile.from_record(record)
