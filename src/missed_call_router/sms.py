from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# Empty TwiML: acknowledges the webhook without Twilio sending an auto-reply.
EMPTY_TWIML = """<?xml version="1.0" encoding="UTF-8"?>
<Response></Response>"""


class InboundMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    sender_address: str
    destination_address: str
    raw_text: str = ""
    message_id: str | None = None

    @classmethod
    def from_twilio_form(
        cls,
        *,
        from_: str,
        to: str,
        body: str | None = None,
        message_sid: str | None = None,
    ) -> InboundMessage:
        return cls(
            sender_address=from_,
            destination_address=to,
            raw_text=body or "",
            message_id=message_sid or None,
        )
