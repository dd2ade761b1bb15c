"""
AWS Lambda entry point for SES notifications delivered by SNS.

Deploy with handler ``app.handler.ses_events_handler``. Logging and Sentry are
set up when the module is imported, so the Lambda integration wraps the first
invocation too. The boto3 client and dispatcher are built on the first
invocation and reused for the lifetime of the execution environment.
"""

import json
import logging
from functools import lru_cache
from typing import Any

import boto3

from app.config import Settings, get_settings
from app.services.batch_dispatcher import BatchDispatcher
from app.services.log_client import CloudWatchLogClient
from app.telemetry import capture_exception, configure_logging, init_telemetry

logger = logging.getLogger(__name__)

SUCCESS_BODY = "Events processed successfully"


def build_dispatcher(settings: Settings, client: Any = None) -> BatchDispatcher:
    """Wire a BatchDispatcher for the given settings (and optional logs client)."""
    if client is None:
        client = boto3.client("logs", region_name=settings.aws_region)
    return BatchDispatcher(
        CloudWatchLogClient(client),
        settings.destination,
        expected_source=settings.expected_event_source,
    )


def init_runtime(settings: Settings) -> None:
    """Configure logging and error telemetry for this process."""
    configure_logging(settings.log_level)
    init_telemetry(settings)


init_runtime(get_settings())


@lru_cache(maxsize=1)
def get_dispatcher() -> BatchDispatcher:
    return build_dispatcher(get_settings())


def ses_events_handler(event: dict, context: Any) -> dict:
    """
    Process one SNS batch of SES notifications.

    Returns a 200 status and confirmation message once the batch has been
    walked; per-record append failures are only visible in the logs. Setup
    failures and unexpected errors propagate so Lambda retries the batch.
    """
    dispatcher = get_dispatcher()
    records = event.get("Records") or []
    request_id = getattr(context, "aws_request_id", "n/a")
    logger.info(f"Received {len(records)} record(s) (request id: {request_id})")
    logger.debug(f"Received event: {json.dumps(event, indent=2, default=str)}")

    try:
        dispatcher.handle(records)
    except Exception as exc:
        logger.error(f"Error processing event: {exc}")
        capture_exception(exc)
        raise

    return {
        "statusCode": 200,
        "body": json.dumps(SUCCESS_BODY),
    }
