"""
Pydantic models for SES email notification events.

Models:
  EventKind            — closed set of SES event kinds (+ UNRECOGNIZED)
  BounceDetails ...    — kind-specific detail blocks, one per EventKind
  ProcessedEvent       — normalized record written to CloudWatch Logs
  LogDestination       — log group / log stream pair the records go to

Detail field names mirror SES's own camelCase keys so the persisted message
reads the same as the notification it came from.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel

UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Event kinds
# ---------------------------------------------------------------------------

class EventKind(str, Enum):
    """SES event kinds the normalizer knows how to enrich."""

    BOUNCE = "bounce"
    COMPLAINT = "complaint"
    DELIVERY = "delivery"
    SEND = "send"
    REJECT = "reject"
    RENDERING_FAILURE = "renderingFailure"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def from_event_type(cls, event_type: Optional[str]) -> "EventKind":
        """
        Map an SES eventType / notificationType spelling to a kind.

        SES configuration-set events use capitalized names ("Bounce",
        "Rendering Failure"); other producers use the lowercase camelCase
        form ("bounce", "renderingFailure"). Both land on the same kind.
        Anything else, including None, is UNRECOGNIZED.
        """
        if not isinstance(event_type, str):
            return cls.UNRECOGNIZED
        return _EVENT_TYPE_ALIASES.get(event_type, cls.UNRECOGNIZED)


_EVENT_TYPE_ALIASES: dict[str, EventKind] = {
    "Bounce": EventKind.BOUNCE,
    "bounce": EventKind.BOUNCE,
    "Complaint": EventKind.COMPLAINT,
    "complaint": EventKind.COMPLAINT,
    "Delivery": EventKind.DELIVERY,
    "delivery": EventKind.DELIVERY,
    "Send": EventKind.SEND,
    "send": EventKind.SEND,
    "Reject": EventKind.REJECT,
    "reject": EventKind.REJECT,
    "Rendering Failure": EventKind.RENDERING_FAILURE,
    "RenderingFailure": EventKind.RENDERING_FAILURE,
    "renderingFailure": EventKind.RENDERING_FAILURE,
}


# ---------------------------------------------------------------------------
# Kind-specific details
# ---------------------------------------------------------------------------

class _Details(BaseModel):
    model_config = {"frozen": True}


class BounceDetails(_Details):
    bounceType: str = UNKNOWN
    bounceSubType: str = UNKNOWN
    bouncedRecipients: list[Any] = []


class ComplaintDetails(_Details):
    complaintFeedbackType: str = UNKNOWN
    complainedRecipients: list[Any] = []


class DeliveryDetails(_Details):
    processingTimeMillis: int = 0
    smtpResponse: str = UNKNOWN


class RejectDetails(_Details):
    reason: str = UNKNOWN


class RenderingFailureDetails(_Details):
    errorMessage: str = UNKNOWN
    templateName: str = UNKNOWN


EventDetails = Union[
    BounceDetails,
    ComplaintDetails,
    DeliveryDetails,
    RejectDetails,
    RenderingFailureDetails,
]


# ---------------------------------------------------------------------------
# Processed event
# ---------------------------------------------------------------------------

class ProcessedEvent(BaseModel):
    """
    One SES notification, normalized for the log store.

    Base fields are always populated ("unknown" when the notification did not
    carry them). ``details`` is None for send events and unrecognized kinds.
    ``rawEvent`` is the decoded notification exactly as received.
    """

    model_config = {"frozen": True}

    timestamp: str
    messageId: str = UNKNOWN
    eventType: str = UNKNOWN
    kind: EventKind = EventKind.UNRECOGNIZED
    recipient: str = UNKNOWN
    source: str = UNKNOWN
    subject: str = UNKNOWN
    details: Optional[EventDetails] = None
    rawEvent: dict[str, Any] = {}

    def to_log_message(self) -> dict[str, Any]:
        """
        Flatten into the persisted message body.

        Key order: timestamp, messageId, eventType, recipient, source,
        subject, the kind-specific fields, rawEvent.
        """
        message: dict[str, Any] = {
            "timestamp": self.timestamp,
            "messageId": self.messageId,
            "eventType": self.eventType,
            "recipient": self.recipient,
            "source": self.source,
            "subject": self.subject,
        }
        if self.details is not None:
            message.update(self.details.model_dump())
        message["rawEvent"] = self.rawEvent
        return message


# ---------------------------------------------------------------------------
# Destination
# ---------------------------------------------------------------------------

class LogDestination(BaseModel):
    """CloudWatch Logs group + stream that every processed event is appended to."""

    model_config = {"frozen": True}

    log_group_name: str
    log_stream_name: str
