"""
CloudWatch Logs client for processed SES events.

Wraps a boto3 ``logs`` client and implements the append protocol:

  1. ensure_destination  — create log group + stream; "already exists" and
                           "access denied" both count as success (the runtime
                           role is often granted only logs:PutLogEvents and
                           the destination is provisioned separately).
  2. fetch_sequence_token — describe the stream and return its
                           uploadSequenceToken, or None.
  3. append              — put a single-event batch; on
                           InvalidSequenceTokenException retry exactly once
                           with the token CloudWatch says it expects.

Every append is one log event. A batch either fully succeeds or fully fails
at the store, so keeping it to one record keeps token recovery per record.
"""

import json
import logging
import re
import time
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from app.models.ses_event import LogDestination, ProcessedEvent

logger = logging.getLogger(__name__)

ALREADY_EXISTS = "ResourceAlreadyExistsException"
ACCESS_DENIED = "AccessDeniedException"
INVALID_SEQUENCE_TOKEN = "InvalidSequenceTokenException"

# CloudWatch embeds the token it wants in the error text, e.g.
# "The given sequenceToken is invalid. The next expected sequenceToken is: 4963..."
_EXPECTED_TOKEN_RE = re.compile(r"next expected sequenceToken is: (\S+)")

# "The next expected sequenceToken is: null" means the stream expects no token.
NO_TOKEN = ""


class LogDestinationError(RuntimeError):
    """Log group or stream could not be created for a reason other than exists/denied."""


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def extract_expected_sequence_token(exc: ClientError) -> Optional[str]:
    """
    Return the sequence token CloudWatch expects next.

    Prefers the structured ``expectedSequenceToken`` field botocore surfaces on
    modeled errors; falls back to parsing the error message.

    Returns:
        the token string, NO_TOKEN ("") when CloudWatch reports "null" (retry
        without a token), or None when nothing could be extracted.
    """
    token = exc.response.get("expectedSequenceToken") or exc.response.get(
        "Error", {}
    ).get("expectedSequenceToken")
    if not token:
        message = exc.response.get("Error", {}).get("Message") or str(exc)
        match = _EXPECTED_TOKEN_RE.search(message)
        if not match:
            return None
        token = match.group(1)
    if token == "null":
        return NO_TOKEN
    return token


class CloudWatchLogClient:
    """Appends ProcessedEvents to one CloudWatch Logs stream."""

    def __init__(self, client: Any) -> None:
        self._client = client

    # ------------------------------------------------------------------
    # Destination setup
    # ------------------------------------------------------------------

    def ensure_destination(self, destination: LogDestination) -> None:
        """
        Create the log group and the log stream if they do not exist.

        Raises:
            LogDestinationError: for any create failure other than
                ResourceAlreadyExistsException / AccessDeniedException.
        """
        self._create(
            "log group",
            destination.log_group_name,
            self._client.create_log_group,
            logGroupName=destination.log_group_name,
        )
        self._create(
            "log stream",
            destination.log_stream_name,
            self._client.create_log_stream,
            logGroupName=destination.log_group_name,
            logStreamName=destination.log_stream_name,
        )

    def _create(self, label: str, name: str, operation, **kwargs) -> None:
        try:
            operation(**kwargs)
            logger.info(f"Created {label}: {name}")
        except ClientError as exc:
            code = error_code(exc)
            if code == ALREADY_EXISTS:
                logger.info(f"{label.capitalize()} already exists: {name}")
            elif code == ACCESS_DENIED:
                logger.warning(
                    f"Cannot create {label} (access denied), assuming it exists: {name}"
                )
            else:
                logger.error(f"Error creating {label} {name}: {exc}")
                raise LogDestinationError(
                    f"Failed to create {label} {name!r}: {exc}"
                ) from exc

    # ------------------------------------------------------------------
    # Sequence token
    # ------------------------------------------------------------------

    def fetch_sequence_token(self, destination: LogDestination) -> Optional[str]:
        """
        Return the stream's current uploadSequenceToken.

        None when the stream has never been written to, is not listed, or the
        lookup itself fails. A stale or missing token is corrected by the
        retry in append(), so lookup errors are not fatal.
        """
        try:
            response = self._client.describe_log_streams(
                logGroupName=destination.log_group_name,
                logStreamNamePrefix=destination.log_stream_name,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.warning(f"Error getting sequence token: {exc}")
            return None

        for stream in response.get("logStreams") or []:
            if stream.get("logStreamName") == destination.log_stream_name:
                return stream.get("uploadSequenceToken")
        return None

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def _put(
        self,
        destination: LogDestination,
        message: str,
        sequence_token: Optional[str],
    ) -> None:
        params: dict[str, Any] = {
            "logGroupName": destination.log_group_name,
            "logStreamName": destination.log_stream_name,
            "logEvents": [
                {"timestamp": int(time.time() * 1000), "message": message},
            ],
        }
        if sequence_token:
            params["sequenceToken"] = sequence_token
        self._client.put_log_events(**params)

    def append(self, destination: LogDestination, event: ProcessedEvent) -> bool:
        """
        Write one ProcessedEvent to the stream.

        Returns True on success. On InvalidSequenceTokenException retries once
        with the expected token from the error. Returns False when that token
        cannot be extracted, when the retry fails, or when the first attempt
        fails for any other reason (CloudWatch error, network, credentials).
        """
        message = json.dumps(event.to_log_message(), default=str)
        sequence_token = self.fetch_sequence_token(destination)

        try:
            self._put(destination, message, sequence_token)
            logger.info("Successfully wrote event to CloudWatch Logs")
            return True
        except ClientError as exc:
            logger.error(f"Error writing to CloudWatch Logs: {exc}")
            if error_code(exc) != INVALID_SEQUENCE_TOKEN:
                return False
            expected = extract_expected_sequence_token(exc)
        except BotoCoreError as exc:
            logger.error(f"Error writing to CloudWatch Logs: {exc}")
            return False

        if expected is None:
            logger.error("Could not determine expected sequence token; dropping event")
            return False

        try:
            self._put(destination, message, expected)
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"Retry failed: {exc}")
            return False
        logger.info("Successfully wrote event to CloudWatch Logs (retry)")
        return True

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def check_destination(self, destination: LogDestination) -> bool:
        """Return True when the log group can be described."""
        try:
            self._client.describe_log_streams(
                logGroupName=destination.log_group_name,
                limit=1,
            )
            return True
        except (ClientError, BotoCoreError) as exc:
            logger.error(f"CloudWatch Logs health check failed: {exc}")
            return False
