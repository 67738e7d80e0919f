"""Channel selection and delivery of the tradesperson alert."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from .classifier import UNKNOWN_LOCATION, Classification
from .config import Settings
from .errors import ConfigurationError
from .profiles import TradespersonProfile
from .sms import InboundMessage
from .twilio_client import MessagingGateway

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX: Final[str] = "whatsapp:"
TEMPLATE_AREA_NOT_PROVIDED: Final[str] = "Area not provided"
SMS_AREA_NOT_PROVIDED: Final[str] = "Not provided"


class Channel(str, Enum):
    WHATSAPP = "WhatsApp"
    SMS = "SMS"


# Business policy: profiles with no (or an unrecognised) preference get WhatsApp.
DEFAULT_CHANNEL: Final[Channel] = Channel.WHATSAPP

_CHANNELS_BY_NAME: Final[dict[str, Channel]] = {
    "whatsapp": Channel.WHATSAPP,
    "sms": Channel.SMS,
}


class RoutingState(str, Enum):
    CLASSIFIED = "classified"
    CHANNEL_SELECTED = "channel_selected"
    PAYLOAD_BUILT = "payload_built"
    ALERT_ATTEMPTED = "alert_attempted"
    ALERT_SUCCEEDED = "alert_succeeded"
    ALERT_FAILED = "alert_failed"
    CONFIRMATION_ATTEMPTED = "confirmation_attempted"
    DONE = "done"


ALLOWED_TRANSITIONS: Final[dict[RoutingState, frozenset[RoutingState]]] = {
    RoutingState.CLASSIFIED: frozenset({RoutingState.CHANNEL_SELECTED}),
    RoutingState.CHANNEL_SELECTED: frozenset({RoutingState.PAYLOAD_BUILT}),
    RoutingState.PAYLOAD_BUILT: frozenset({RoutingState.ALERT_ATTEMPTED}),
    RoutingState.ALERT_ATTEMPTED: frozenset(
        {RoutingState.ALERT_SUCCEEDED, RoutingState.ALERT_FAILED}
    ),
    RoutingState.ALERT_SUCCEEDED: frozenset({RoutingState.CONFIRMATION_ATTEMPTED}),
    RoutingState.ALERT_FAILED: frozenset(),
    RoutingState.CONFIRMATION_ATTEMPTED: frozenset({RoutingState.DONE}),
    RoutingState.DONE: frozenset(),
}


@dataclass(frozen=True)
class AlertPayload:
    channel: Channel
    from_: str
    to: str
    template_id: str | None = None
    variables: dict[str, str] | None = None
    body: str | None = None


@dataclass
class RoutingDecision:
    message: InboundMessage
    profile: TradespersonProfile
    classification: Classification
    state: RoutingState = RoutingState.CLASSIFIED
    channel: Channel | None = None
    payload: AlertPayload | None = None
    alert_sent: bool = False
    confirmation_sent: bool = False
    history: list[RoutingState] = field(default_factory=list)

    def advance(self, state: RoutingState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal routing transition {self.state.value} -> {state.value}")
        self.history.append(self.state)
        self.state = state


def select_channel(preferred: str | None) -> Channel:
    """Case-insensitive channel lookup; unset or unknown values fall back to DEFAULT_CHANNEL."""
    key = (preferred or "").strip().lower()
    if not key:
        return DEFAULT_CHANNEL

    channel = _CHANNELS_BY_NAME.get(key)
    if channel is None:
        logger.warning(
            "Unrecognised preferred channel %r, using %s",
            preferred,
            DEFAULT_CHANNEL.value,
            extra={"stage": "routing"},
        )
        return DEFAULT_CHANNEL
    return channel


def whatsapp_address(number: str) -> str:
    return number if number.startswith(WHATSAPP_PREFIX) else f"{WHATSAPP_PREFIX}{number}"


def template_variables(message: InboundMessage, classification: Classification) -> dict[str, str]:
    return {
        "1": message.sender_address,
        "2": classification.reply,
        "3": (
            classification.location
            if classification.location != UNKNOWN_LOCATION
            else TEMPLATE_AREA_NOT_PROVIDED
        ),
        "4": classification.urgency.value,
    }


def sms_alert_body(message: InboundMessage, classification: Classification) -> str:
    location = (
        classification.location
        if classification.location != UNKNOWN_LOCATION
        else SMS_AREA_NOT_PROVIDED
    )
    return (
        "New missed call enquiry\n"
        f"From: {message.sender_address}\n"
        f'Msg: "{classification.reply}"\n'
        f"Loc: {location}\n"
        f"Urgency: {classification.urgency.value}"
    )


def confirmation_body(profile: TradespersonProfile) -> str:
    return f"Thanks, got it. {profile.business_name} will be in touch shortly."


def build_payload(decision: RoutingDecision, settings: Settings) -> AlertPayload:
    profile = decision.profile
    message = decision.message

    if decision.channel is Channel.WHATSAPP:
        missing = [
            name
            for name, value in (
                ("WhatsApp Number", profile.whatsapp_address),
                ("TEMPLATE_SID", settings.template_sid),
                ("WHATSAPP_FROM", settings.whatsapp_from),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing WhatsApp config ({' / '.join(missing)})")

        return AlertPayload(
            channel=Channel.WHATSAPP,
            from_=settings.whatsapp_from,  # type: ignore[arg-type]
            to=whatsapp_address(profile.whatsapp_address),  # type: ignore[arg-type]
            template_id=settings.template_sid,
            variables=template_variables(message, decision.classification),
        )

    if not profile.mobile_address:
        raise ConfigurationError("Preferred SMS but Electrician Mobile missing")

    return AlertPayload(
        channel=Channel.SMS,
        from_=message.destination_address,
        to=profile.mobile_address,
        body=sms_alert_body(message, decision.classification),
    )


def decide_route(
    message: InboundMessage,
    profile: TradespersonProfile,
    classification: Classification,
    settings: Settings,
) -> RoutingDecision:
    """
    Select the alert channel and build its payload.

    Raises ConfigurationError when the chosen channel lacks an address or a
    required setting; there is no fallback to the other channel.
    """
    decision = RoutingDecision(message=message, profile=profile, classification=classification)

    decision.channel = select_channel(profile.preferred_channel)
    decision.advance(RoutingState.CHANNEL_SELECTED)

    decision.payload = build_payload(decision, settings)
    decision.advance(RoutingState.PAYLOAD_BUILT)

    return decision


def deliver(decision: RoutingDecision, gateway: MessagingGateway) -> RoutingDecision:
    """
    Send the alert, then (only if it went out) the customer confirmation.

    ``decision`` is updated as each step completes so a caller handling a
    send failure can still see how far delivery got.
    """
    payload = decision.payload
    if payload is None:
        raise RuntimeError("deliver() called before a payload was built")

    decision.advance(RoutingState.ALERT_ATTEMPTED)
    try:
        if payload.channel is Channel.WHATSAPP:
            gateway.send_template(
                from_=payload.from_,
                to=payload.to,
                template_id=payload.template_id or "",
                variables=payload.variables or {},
            )
        else:
            gateway.send_text(from_=payload.from_, to=payload.to, body=payload.body or "")
    except Exception:
        decision.advance(RoutingState.ALERT_FAILED)
        raise

    decision.alert_sent = True
    decision.advance(RoutingState.ALERT_SUCCEEDED)

    decision.advance(RoutingState.CONFIRMATION_ATTEMPTED)
    gateway.send_text(
        from_=decision.message.destination_address,
        to=decision.message.sender_address,
        body=confirmation_body(decision.profile),
    )
    decision.confirmation_sent = True
    decision.advance(RoutingState.DONE)

    return decision
