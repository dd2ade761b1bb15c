"""
Batch dispatcher: one Lambda/SNS batch in, one CloudWatch append per SES event out.

Records are handled strictly one after another; each append advances the
stream's sequence token, so appends to the same stream must not overlap.
Per-record problems (bad JSON, non-SES message, failed append) are logged and
the batch continues. Anything unexpected propagates so the transport
redelivers the whole batch.
"""

import json
import logging
from typing import Any, Iterable, Optional

from app.models.dispatch import DispatchSummary, RecordOutcome, RecordStatus
from app.models.ses_event import LogDestination
from app.services.event_normalizer import normalize_event
from app.services.log_client import CloudWatchLogClient

logger = logging.getLogger(__name__)


def decode_sns_message(record: dict) -> Optional[dict]:
    """
    Decode the SES notification embedded in an SNS record.

    Returns None when Sns.Message is not valid JSON or is not a JSON object.
    A record without an Sns section is malformed transport input and raises.
    """
    body = record["Sns"].get("Message")
    try:
        payload = json.loads(body)
    except (TypeError, ValueError) as exc:
        logger.error(f"Failed to parse SNS message: {exc}")
        logger.error(f"Raw message content: {body!r}")
        return None
    if not isinstance(payload, dict):
        logger.error(f"SNS message is not a JSON object: {body!r}")
        return None
    return payload


def promote_notification_type(payload: dict) -> Optional[dict]:
    """
    Return the payload with a usable ``eventType``, or None if it is not SES.

    Configuration-set events carry ``eventType``; legacy identity
    notifications carry ``notificationType``, which wins when present.
    """
    if payload.get("notificationType"):
        return {**payload, "eventType": payload["notificationType"]}
    if payload.get("eventType"):
        return payload
    return None


class BatchDispatcher:
    """Runs a transport batch through the normalizer and the log client."""

    def __init__(
        self,
        log_client: CloudWatchLogClient,
        destination: LogDestination,
        expected_source: str = "aws:sns",
    ) -> None:
        self._log_client = log_client
        self._destination = destination
        self._expected_source = expected_source

    @property
    def log_client(self) -> CloudWatchLogClient:
        return self._log_client

    @property
    def destination(self) -> LogDestination:
        return self._destination

    def handle(self, records: Iterable[dict]) -> DispatchSummary:
        """
        Process every record in the batch.

        ensure_destination runs once, before the loop, even when no record
        turns out to be an SES event. LogDestinationError propagates.
        """
        self._log_client.ensure_destination(self._destination)

        summary = DispatchSummary()
        for index, record in enumerate(records):
            summary.outcomes.append(self._handle_record(index, record))

        logger.info(f"Batch processing complete: {summary.as_log_fields()}")
        return summary

    def _handle_record(self, index: int, record: dict) -> RecordOutcome:
        source = record.get("EventSource")
        if source != self._expected_source:
            logger.info(f"Skipping record {index} from event source {source!r}")
            return RecordOutcome(index=index, status=RecordStatus.SKIPPED_SOURCE)

        logger.debug(f"Processing SNS record: {record}")

        payload = decode_sns_message(record)
        if payload is None:
            return RecordOutcome(index=index, status=RecordStatus.DECODE_FAILED)

        payload = promote_notification_type(payload)
        if payload is None:
            logger.info("Received non-SES SNS message, skipping...")
            return RecordOutcome(index=index, status=RecordStatus.SKIPPED_IRRELEVANT)

        event = normalize_event(payload)
        outcome: dict[str, Any] = {
            "index": index,
            "message_id": event.messageId,
            "event_type": event.eventType,
            "recipient": event.recipient,
        }

        if self._log_client.append(self._destination, event):
            logger.info(f"Processed {event.eventType} event for {event.recipient}")
            return RecordOutcome(status=RecordStatus.APPENDED, **outcome)

        logger.error(
            f"Failed to write {event.eventType} event {event.messageId} to CloudWatch"
        )
        return RecordOutcome(status=RecordStatus.APPEND_FAILED, **outcome)
