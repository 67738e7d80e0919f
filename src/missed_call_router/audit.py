"""Audit trail in the Airtable log table: the idempotency guard and the writer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .classifier import Classification
from .errors import LogWriteError, RecordLookupError, RecordStoreError
from .sms import InboundMessage
from .store import RecordStore

logger = logging.getLogger(__name__)

MESSAGE_SID_FIELD = "MessageSid"
UNKNOWN_MESSAGE_SID = "unknown"


@dataclass(frozen=True)
class RoutingOutcome:
    matched: bool
    channel_used: str | None = None
    alert_sent: bool = False
    confirmation_sent: bool = False
    error_note: str | None = None
    notes: str = ""
    # Re-delivery of a message that already has a log entry; nothing was written.
    duplicate: bool = False


@dataclass(frozen=True)
class LogEntry:
    message: InboundMessage
    classification: Classification
    outcome: RoutingOutcome
    profile_record_id: str | None = None

    def to_fields(self) -> dict[str, Any]:
        """Map the entry onto the log table's columns."""
        outcome = self.outcome
        notes = outcome.error_note or outcome.notes
        return {
            "Customer Number": self.message.sender_address,
            "Electrician": [self.profile_record_id] if self.profile_record_id else [],
            "Alert Sent": outcome.alert_sent,
            "Reply Received": True,
            "Notes": notes or "",
            "Customer Message": self.classification.reply,
            "Urgency": self.classification.urgency.value,
            "Postcode": self.classification.location,
            "Alert Channel": outcome.channel_used or "",
            "Customer Confirmation Sent": outcome.confirmation_sent,
            MESSAGE_SID_FIELD: self.message.message_id or UNKNOWN_MESSAGE_SID,
        }


def already_processed(store: RecordStore, message_id: str) -> bool:
    """True if the log table already holds an entry for this MessageSid."""
    try:
        record = store.query_first(store.log_table, MESSAGE_SID_FIELD, message_id)
    except RecordStoreError as exc:
        raise RecordLookupError(f"Idempotency check failed for {message_id}: {exc}") from exc
    return record is not None


def log_outcome(store: RecordStore, entry: LogEntry) -> None:
    """
    Append one row to the log table.

    Does not deduplicate; callers run ``already_processed`` first. Failures
    propagate: an unaudited request is treated as an error.
    """
    store.require_configured()
    fields = entry.to_fields()

    try:
        store.create_record(store.log_table, fields)
    except RecordStoreError as exc:
        logger.error(
            "Airtable write FAILED: %s",
            exc,
            extra={"message_sid": entry.message.message_id, "stage": "audit"},
        )
        raise LogWriteError(f"Could not write log entry: {exc}") from exc

    logger.info(
        "Logged outcome to %s",
        store.log_table,
        extra={
            "message_sid": entry.message.message_id,
            "stage": "audit",
            "event": "error" if entry.outcome.error_note else "logged",
        },
    )
