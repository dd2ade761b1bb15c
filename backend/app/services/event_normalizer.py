"""
SES event normalizer.

Converts one decoded SES notification (configuration-set event or legacy SNS
notification) into a ProcessedEvent. Never raises on missing data: every
absent field falls back to "unknown", an empty list, or 0.

Adding a new event kind:
  1. Add it to EventKind (and its spellings to _EVENT_TYPE_ALIASES).
  2. Write an _extract_<kind>(raw: dict) function below.
  3. Register it in _DETAIL_EXTRACTORS.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from app.models.ses_event import (
    UNKNOWN,
    BounceDetails,
    ComplaintDetails,
    DeliveryDetails,
    EventDetails,
    EventKind,
    ProcessedEvent,
    RejectDetails,
    RenderingFailureDetails,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _section(raw: dict, key: str) -> dict:
    """Return raw[key] when it is a mapping, otherwise an empty dict."""
    value = raw.get(key)
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str:
    """Return value if it is a non-empty string, otherwise "unknown"."""
    if isinstance(value, str) and value:
        return value
    return UNKNOWN


def _items(value: Any) -> list:
    return list(value) if isinstance(value, list) else []


def _millis(value: Any) -> int:
    # bool is an int subclass; SES never sends one here
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def _utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Per-kind detail extractors
# ---------------------------------------------------------------------------

def _extract_bounce(raw: dict) -> BounceDetails:
    bounce = _section(raw, "bounce")
    return BounceDetails(
        bounceType=_text(bounce.get("bounceType")),
        bounceSubType=_text(bounce.get("bounceSubType")),
        bouncedRecipients=_items(bounce.get("bouncedRecipients")),
    )


def _extract_complaint(raw: dict) -> ComplaintDetails:
    complaint = _section(raw, "complaint")
    return ComplaintDetails(
        complaintFeedbackType=_text(complaint.get("complaintFeedbackType")),
        complainedRecipients=_items(complaint.get("complainedRecipients")),
    )


def _extract_delivery(raw: dict) -> DeliveryDetails:
    delivery = _section(raw, "delivery")
    return DeliveryDetails(
        processingTimeMillis=_millis(delivery.get("processingTimeMillis")),
        smtpResponse=_text(delivery.get("smtpResponse")),
    )


def _extract_reject(raw: dict) -> RejectDetails:
    reject = _section(raw, "reject")
    return RejectDetails(reason=_text(reject.get("reason")))


def _extract_rendering_failure(raw: dict) -> RenderingFailureDetails:
    # SES puts rendering failure data under "failure", not "renderingFailure"
    failure = _section(raw, "failure")
    return RenderingFailureDetails(
        errorMessage=_text(failure.get("errorMessage")),
        templateName=_text(failure.get("templateName")),
    )


def _no_details(raw: dict) -> None:
    return None


_DETAIL_EXTRACTORS: dict[EventKind, Callable[[dict], Optional[EventDetails]]] = {
    EventKind.BOUNCE: _extract_bounce,
    EventKind.COMPLAINT: _extract_complaint,
    EventKind.DELIVERY: _extract_delivery,
    EventKind.SEND: _no_details,
    EventKind.REJECT: _extract_reject,
    EventKind.RENDERING_FAILURE: _extract_rendering_failure,
    EventKind.UNRECOGNIZED: _no_details,
}


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def normalize_event(raw: dict, now: Optional[datetime] = None) -> ProcessedEvent:
    """
    Build a ProcessedEvent from a decoded SES notification.

    Base fields come from the ``mail`` section:
      messageId  ← mail.messageId
      recipient  ← mail.destination[0]
      source     ← mail.source
      subject    ← mail.commonHeaders.subject

    ``eventType`` is the canonical kind name for recognized kinds, so
    "Bounce" and "bounce" produce the same record; unrecognized kinds keep
    the value they arrived with. ``timestamp`` is the time of normalization
    (``now`` when given, for tests), not the SES event time.
    """
    mail = _section(raw, "mail")
    destination = _items(mail.get("destination"))
    common_headers = _section(mail, "commonHeaders")

    raw_type = raw.get("eventType")
    kind = EventKind.from_event_type(raw_type)
    if kind is EventKind.UNRECOGNIZED:
        event_type = _text(raw_type)
        if raw_type is not None:
            logger.debug(f"normalize_event: unrecognized event type {raw_type!r}")
    else:
        event_type = kind.value

    return ProcessedEvent(
        timestamp=_utc_timestamp(now),
        messageId=_text(mail.get("messageId")),
        eventType=event_type,
        kind=kind,
        recipient=_text(destination[0] if destination else None),
        source=_text(mail.get("source")),
        subject=_text(common_headers.get("subject")),
        details=_DETAIL_EXTRACTORS[kind](raw),
        rawEvent=raw,
    )
