"""
SNS HTTP(S) subscription endpoint.

Lets an SNS topic deliver SES notifications over HTTPS instead of through
Lambda. Each request carries exactly one SNS message; Notifications are
wrapped as a one-record batch and run through the same BatchDispatcher the
Lambda handler uses.

Endpoints:
  POST /events   — SNS message receiver (auth: optional ?token=)

Subscription confirmation is manual: the SubscribeURL is logged and an
operator confirms it (or runs `aws sns confirm-subscription`).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from app.config import Settings, get_settings
from app.handler import get_dispatcher
from app.services.batch_dispatcher import BatchDispatcher
from app.services.log_client import LogDestinationError

logger = logging.getLogger(__name__)

router = APIRouter()

_SUBSCRIPTION_MESSAGE_TYPES = {"SubscriptionConfirmation", "UnsubscribeConfirmation"}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def _verify_endpoint_token(
    token: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Check the ?token= query parameter against SNS_ENDPOINT_TOKEN.

    SNS cannot send custom headers, so the shared secret travels in the
    subscription URL. No check is made when the token is not configured.
    """
    expected = settings.sns_endpoint_token
    if not expected:
        return
    if not token or token != expected:
        raise HTTPException(status_code=401, detail="Invalid endpoint token")


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@router.post("/events")
def receive_sns_message(
    payload: dict,
    x_amz_sns_message_type: Optional[str] = Header(None),
    _: None = Depends(_verify_endpoint_token),
    settings: Settings = Depends(get_settings),
    dispatcher: BatchDispatcher = Depends(get_dispatcher),
) -> dict:
    """
    Receive one SNS message.

    Returns 503 when the log destination cannot be set up so SNS retries the
    delivery; per-record failures still return 200 (see summary).
    """
    message_type = x_amz_sns_message_type or payload.get("Type")

    if message_type in _SUBSCRIPTION_MESSAGE_TYPES:
        logger.warning(
            f"SNS {message_type} for topic {payload.get('TopicArn')}; "
            f"confirm via SubscribeURL: {payload.get('SubscribeURL')}"
        )
        return {"received": True, "processed": False, "reason": "subscription_message"}

    if message_type != "Notification":
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported SNS message type: {message_type!r}",
        )

    record = {"EventSource": settings.expected_event_source, "Sns": payload}
    try:
        summary = dispatcher.handle([record])
    except LogDestinationError as exc:
        logger.error(f"Log destination unavailable: {exc}")
        raise HTTPException(status_code=503, detail="Log destination unavailable")

    return {"received": True, "summary": summary.model_dump(mode="json")}
