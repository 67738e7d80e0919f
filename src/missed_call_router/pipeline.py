from __future__ import annotations

import logging

from .audit import LogEntry, RoutingOutcome, already_processed, log_outcome
from .classifier import classify_message
from .config import Settings
from .profiles import TradespersonProfile, find_profile_by_destination, normalise_address
from .routing import RoutingDecision, decide_route, deliver
from .sms import InboundMessage
from .store import RecordStore
from .twilio_client import MessagingGateway

logger = logging.getLogger(__name__)


def handle_inbound(
    message: InboundMessage,
    *,
    store: RecordStore,
    gateway: MessagingGateway,
    settings: Settings,
) -> RoutingOutcome:
    """
    Route one missed-call text to its tradesperson and audit the result.

    - skips messages whose MessageSid is already in the log
    - logs an "unmatched" entry when no profile owns the destination number
    - alerts the tradesperson, then confirms to the customer
    - never raises: any failure is logged (best effort) and returned as an outcome
    """
    sid = message.message_id
    classification = classify_message(message.raw_text)
    profile: TradespersonProfile | None = None
    decision: RoutingDecision | None = None

    try:
        # 1. Idempotency: Twilio may deliver the same webhook more than once
        if sid and store.configured and already_processed(store, sid):
            logger.info(
                "Message already processed, skipping",
                extra={"message_sid": sid, "stage": "guard", "event": "duplicate"},
            )
            return RoutingOutcome(matched=False, duplicate=True, notes="Duplicate delivery")

        # 2. Find the tradesperson who owns the number that was texted
        profile = find_profile_by_destination(store, message.destination_address)

        if profile is None:
            outcome = RoutingOutcome(
                matched=False,
                notes=(
                    "No electrician matched Twilio Number "
                    f"{normalise_address(message.destination_address)}"
                ),
            )
            log_outcome(
                store,
                LogEntry(message=message, classification=classification, outcome=outcome),
            )
            return outcome

        # 3. Pick a channel, build the alert, send it and confirm to the customer
        decision = decide_route(message, profile, classification, settings)
        deliver(decision, gateway)

        outcome = RoutingOutcome(
            matched=True,
            channel_used=decision.channel.value if decision.channel else None,
            alert_sent=decision.alert_sent,
            confirmation_sent=decision.confirmation_sent,
            notes=f"Preferred={profile.preferred_channel or ''}",
        )

        # 4. Audit the successful routing
        log_outcome(
            store,
            LogEntry(
                message=message,
                classification=classification,
                outcome=outcome,
                profile_record_id=profile.record_id,
            ),
        )
        logger.info(
            "Enquiry routed via %s",
            outcome.channel_used,
            extra={"message_sid": sid, "stage": "pipeline", "event": "routed"},
        )
        return outcome

    except Exception as exc:
        logger.exception(
            "Webhook error: %s",
            exc,
            extra={
                "message_sid": sid,
                "stage": "pipeline",
                "event": "error",
                "error_code": getattr(exc, "error_code", None),
            },
        )
        outcome = RoutingOutcome(
            matched=profile is not None,
            channel_used=(
                decision.channel.value
                if decision and decision.alert_sent and decision.channel
                else None
            ),
            alert_sent=decision.alert_sent if decision else False,
            confirmation_sent=decision.confirmation_sent if decision else False,
            error_note=f"ERROR: {str(exc) or type(exc).__name__}",
        )

        # Best effort only: the webhook must be acknowledged whatever happens here.
        try:
            log_outcome(
                store,
                LogEntry(
                    message=message,
                    classification=classification,
                    outcome=outcome,
                    profile_record_id=profile.record_id if profile else None,
                ),
            )
        except Exception:
            logger.exception(
                "Could not write error log entry",
                extra={"message_sid": sid, "stage": "audit", "event": "error_log_failed"},
            )

        return outcome
