from __future__ import annotations

import pytest
from conftest import CUSTOMER, TWILIO_NUMBER, FakeGateway, profile_record

from missed_call_router.classifier import classify_message
from missed_call_router.config import Settings
from missed_call_router.errors import ConfigurationError, SendError
from missed_call_router.profiles import TradespersonProfile
from missed_call_router.routing import (
    DEFAULT_CHANNEL,
    Channel,
    RoutingState,
    decide_route,
    deliver,
    select_channel,
    whatsapp_address,
)
from missed_call_router.sms import InboundMessage
from missed_call_router.twilio_client import UnconfiguredGateway


def make_message(body: str = "URGENT - smell of gas at M1 1AE") -> InboundMessage:
    return InboundMessage.from_twilio_form(
        from_=CUSTOMER, to=TWILIO_NUMBER, body=body, message_sid="SM1"
    )


def make_profile(**kwargs: object) -> TradespersonProfile:
    return TradespersonProfile.from_record(profile_record(**kwargs))  # type: ignore[arg-type]


@pytest.mark.parametrize("value", ["sms", "SMS", "  Sms ", "sMs"])
def test_select_channel_sms_any_case(value: str) -> None:
    assert select_channel(value) is Channel.SMS


@pytest.mark.parametrize("value", [None, "", "  ", "whatsapp", " WhatsApp", "carrier pigeon"])
def test_select_channel_defaults_to_whatsapp(value: str | None) -> None:
    assert DEFAULT_CHANNEL is Channel.WHATSAPP
    assert select_channel(value) is Channel.WHATSAPP


def test_whatsapp_address_prefix() -> None:
    assert whatsapp_address("+447700900001") == "whatsapp:+447700900001"
    assert whatsapp_address("whatsapp:+447700900001") == "whatsapp:+447700900001"


def test_whatsapp_payload_has_four_variables(settings: Settings) -> None:
    message = make_message()
    decision = decide_route(message, make_profile(), classify_message(message.raw_text), settings)

    assert decision.state is RoutingState.PAYLOAD_BUILT
    assert decision.channel is Channel.WHATSAPP
    payload = decision.payload
    assert payload is not None
    assert payload.from_ == "whatsapp:+14155238886"
    assert payload.to == "whatsapp:+447700900001"
    assert payload.template_id == "HXTEMPLATE"
    assert payload.variables == {
        "1": CUSTOMER,
        "2": "URGENT - smell of gas at M1 1AE",
        "3": "M1 1AE",
        "4": "Urgent",
    }


def test_whatsapp_payload_unknown_location_is_readable(settings: Settings) -> None:
    message = make_message("can you call me back")
    decision = decide_route(message, make_profile(), classify_message(message.raw_text), settings)

    assert decision.payload is not None
    assert decision.payload.variables is not None
    assert decision.payload.variables["3"] == "Area not provided"
    assert decision.payload.variables["4"] == "General"


@pytest.mark.parametrize(
    "overrides",
    [{"template_sid": None}, {"whatsapp_from": None}],
)
def test_whatsapp_missing_setting_is_configuration_error(
    settings: Settings, overrides: dict[str, None]
) -> None:
    broken = settings.model_copy(update=overrides)
    message = make_message()

    with pytest.raises(ConfigurationError):
        decide_route(message, make_profile(), classify_message(message.raw_text), broken)


def test_whatsapp_missing_number_never_falls_back_to_sms(settings: Settings) -> None:
    message = make_message()
    profile = make_profile(whatsapp=None, mobile="+447700900002")

    with pytest.raises(ConfigurationError, match="WhatsApp Number"):
        decide_route(message, profile, classify_message(message.raw_text), settings)


def test_sms_payload(settings: Settings) -> None:
    message = make_message("quote for rewiring please")
    decision = decide_route(
        message, make_profile(channel="SMS"), classify_message(message.raw_text), settings
    )

    payload = decision.payload
    assert payload is not None
    assert payload.channel is Channel.SMS
    assert payload.from_ == TWILIO_NUMBER
    assert payload.to == "+447700900002"
    assert payload.body == (
        "New missed call enquiry\n"
        f"From: {CUSTOMER}\n"
        'Msg: "quote for rewiring please"\n'
        "Loc: Not provided\n"
        "Urgency: Quote"
    )


def test_sms_missing_mobile_is_configuration_error(settings: Settings) -> None:
    message = make_message()
    profile = make_profile(channel="sms", mobile=None)

    with pytest.raises(ConfigurationError):
        decide_route(message, profile, classify_message(message.raw_text), settings)


def test_deliver_sms_never_uses_template(settings: Settings) -> None:
    message = make_message()
    gateway = FakeGateway()
    decision = decide_route(
        message, make_profile(channel="Sms"), classify_message(message.raw_text), settings
    )

    deliver(decision, gateway)

    assert gateway.templates == []
    assert [t["to"] for t in gateway.texts] == ["+447700900002", CUSTOMER]
    assert decision.alert_sent and decision.confirmation_sent
    assert decision.state is RoutingState.DONE


def test_deliver_whatsapp_then_confirms(settings: Settings) -> None:
    message = make_message()
    gateway = FakeGateway()
    decision = decide_route(message, make_profile(), classify_message(message.raw_text), settings)

    deliver(decision, gateway)

    assert len(gateway.templates) == 1
    assert gateway.texts == [
        {
            "from_": TWILIO_NUMBER,
            "to": CUSTOMER,
            "body": "Thanks, got it. Sparks Electrical will be in touch shortly.",
        }
    ]
    assert decision.history == [
        RoutingState.CLASSIFIED,
        RoutingState.CHANNEL_SELECTED,
        RoutingState.PAYLOAD_BUILT,
        RoutingState.ALERT_ATTEMPTED,
        RoutingState.ALERT_SUCCEEDED,
        RoutingState.CONFIRMATION_ATTEMPTED,
    ]


def test_failed_alert_skips_confirmation(settings: Settings) -> None:
    message = make_message()
    gateway = FakeGateway(fail_template=True)
    decision = decide_route(message, make_profile(), classify_message(message.raw_text), settings)

    with pytest.raises(SendError):
        deliver(decision, gateway)

    assert gateway.texts == []
    assert decision.state is RoutingState.ALERT_FAILED
    assert not decision.alert_sent
    assert not decision.confirmation_sent


def test_illegal_transition_rejected(settings: Settings) -> None:
    message = make_message()
    decision = decide_route(message, make_profile(), classify_message(message.raw_text), settings)

    with pytest.raises(RuntimeError):
        decision.advance(RoutingState.CONFIRMATION_ATTEMPTED)


def test_unconfigured_gateway_ends_in_alert_failed(settings: Settings) -> None:
    """Any alert failure, not only a Twilio send error, finishes in ALERT_FAILED."""
    message = make_message()
    decision = decide_route(message, make_profile(), classify_message(message.raw_text), settings)

    with pytest.raises(ConfigurationError):
        deliver(decision, UnconfiguredGateway("Twilio credentials are not configured"))

    assert decision.state is RoutingState.ALERT_FAILED
    assert decision.history[-1] is RoutingState.ALERT_ATTEMPTED
    assert not decision.alert_sent
    assert not decision.confirmation_sent
