"""
Unit tests for the CloudWatch Logs client.

The boto3 client is a MagicMock; CloudWatch failures are real botocore
ClientError instances so error-code handling is exercised as in production.
"""

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from app.models.ses_event import LogDestination
from app.services.event_normalizer import normalize_event
from app.services.log_client import (
    NO_TOKEN,
    CloudWatchLogClient,
    LogDestinationError,
    extract_expected_sequence_token,
)

DESTINATION = LogDestination(
    log_group_name="/aws/ses/email-events-test",
    log_stream_name="ses-email-events-stream",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _client_error(code: str, message: str = "", operation: str = "PutLogEvents", **extra):
    response = {"Error": {"Code": code, "Message": message}, **extra}
    return ClientError(response, operation)


def _token_conflict(token: str = "ABC123") -> ClientError:
    return _client_error(
        "InvalidSequenceTokenException",
        f"The given sequenceToken is invalid. The next expected sequenceToken is: {token}",
    )


def _make_event():
    return normalize_event(
        {
            "eventType": "Bounce",
            "mail": {
                "messageId": "msg-1",
                "source": "sender@example.com",
                "destination": ["recipient@example.com"],
                "commonHeaders": {"subject": "Hello"},
            },
            "bounce": {"bounceType": "Permanent"},
        }
    )


def _make_boto_client(streams: list | None = None) -> MagicMock:
    client = MagicMock()
    client.describe_log_streams.return_value = {"logStreams": streams or []}
    client.put_log_events.return_value = {"nextSequenceToken": "next"}
    return client


# ---------------------------------------------------------------------------
# ensure_destination
# ---------------------------------------------------------------------------

class TestEnsureDestination:

    def test_creates_group_then_stream(self):
        client = _make_boto_client()

        CloudWatchLogClient(client).ensure_destination(DESTINATION)

        client.create_log_group.assert_called_once_with(
            logGroupName="/aws/ses/email-events-test"
        )
        client.create_log_stream.assert_called_once_with(
            logGroupName="/aws/ses/email-events-test",
            logStreamName="ses-email-events-stream",
        )

    def test_already_existing_group_and_stream_is_success(self):
        client = _make_boto_client()
        client.create_log_group.side_effect = _client_error(
            "ResourceAlreadyExistsException", operation="CreateLogGroup"
        )
        client.create_log_stream.side_effect = _client_error(
            "ResourceAlreadyExistsException", operation="CreateLogStream"
        )

        CloudWatchLogClient(client).ensure_destination(DESTINATION)

        client.create_log_stream.assert_called_once()

    def test_access_denied_is_assumed_to_exist(self):
        client = _make_boto_client()
        client.create_log_group.side_effect = _client_error(
            "AccessDeniedException", operation="CreateLogGroup"
        )
        client.create_log_stream.side_effect = _client_error(
            "AccessDeniedException", operation="CreateLogStream"
        )

        CloudWatchLogClient(client).ensure_destination(DESTINATION)

        client.create_log_stream.assert_called_once()

    def test_other_group_error_is_fatal(self):
        client = _make_boto_client()
        client.create_log_group.side_effect = _client_error(
            "LimitExceededException", operation="CreateLogGroup"
        )

        with pytest.raises(LogDestinationError) as exc_info:
            CloudWatchLogClient(client).ensure_destination(DESTINATION)

        assert isinstance(exc_info.value.__cause__, ClientError)
        client.create_log_stream.assert_not_called()

    def test_other_stream_error_is_fatal(self):
        client = _make_boto_client()
        client.create_log_stream.side_effect = _client_error(
            "ResourceNotFoundException", operation="CreateLogStream"
        )

        with pytest.raises(LogDestinationError):
            CloudWatchLogClient(client).ensure_destination(DESTINATION)


# ---------------------------------------------------------------------------
# fetch_sequence_token
# ---------------------------------------------------------------------------

class TestFetchSequenceToken:

    def test_returns_token_for_exact_stream_name(self):
        client = _make_boto_client(
            streams=[
                {"logStreamName": "ses-email-events-stream-old", "uploadSequenceToken": "wrong"},
                {"logStreamName": "ses-email-events-stream", "uploadSequenceToken": "tok-1"},
            ]
        )

        token = CloudWatchLogClient(client).fetch_sequence_token(DESTINATION)

        assert token == "tok-1"
        client.describe_log_streams.assert_called_once_with(
            logGroupName="/aws/ses/email-events-test",
            logStreamNamePrefix="ses-email-events-stream",
        )

    def test_new_stream_has_no_token(self):
        client = _make_boto_client(streams=[{"logStreamName": "ses-email-events-stream"}])
        assert CloudWatchLogClient(client).fetch_sequence_token(DESTINATION) is None

    def test_no_streams_listed(self):
        client = _make_boto_client(streams=[])
        assert CloudWatchLogClient(client).fetch_sequence_token(DESTINATION) is None

    def test_lookup_failure_returns_none(self):
        client = _make_boto_client()
        client.describe_log_streams.side_effect = _client_error(
            "ThrottlingException", operation="DescribeLogStreams"
        )
        assert CloudWatchLogClient(client).fetch_sequence_token(DESTINATION) is None

    def test_connection_failure_returns_none(self):
        client = _make_boto_client()
        client.describe_log_streams.side_effect = EndpointConnectionError(
            endpoint_url="https://logs.us-east-1.amazonaws.com"
        )
        assert CloudWatchLogClient(client).fetch_sequence_token(DESTINATION) is None


# ---------------------------------------------------------------------------
# extract_expected_sequence_token
# ---------------------------------------------------------------------------

class TestExtractExpectedSequenceToken:

    def test_parses_token_from_message(self):
        assert extract_expected_sequence_token(_token_conflict("ABC123")) == "ABC123"

    def test_parses_message_without_leading_sentence(self):
        exc = _client_error(
            "InvalidSequenceTokenException", "next expected sequenceToken is: ABC123"
        )
        assert extract_expected_sequence_token(exc) == "ABC123"

    def test_prefers_structured_field(self):
        exc = _client_error(
            "InvalidSequenceTokenException",
            "The next expected sequenceToken is: FROM-TEXT",
            expectedSequenceToken="STRUCTURED",
        )
        assert extract_expected_sequence_token(exc) == "STRUCTURED"

    def test_null_token_means_retry_without_token(self):
        assert extract_expected_sequence_token(_token_conflict("null")) == NO_TOKEN

    def test_unparseable_message(self):
        exc = _client_error("InvalidSequenceTokenException", "The token is bad")
        assert extract_expected_sequence_token(exc) is None


# ---------------------------------------------------------------------------
# append
# ---------------------------------------------------------------------------

class TestAppend:

    def test_first_append_omits_sequence_token(self):
        client = _make_boto_client(streams=[])

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is True

        kwargs = client.put_log_events.call_args.kwargs
        assert "sequenceToken" not in kwargs
        assert kwargs["logGroupName"] == "/aws/ses/email-events-test"
        assert kwargs["logStreamName"] == "ses-email-events-stream"

    def test_single_entry_with_serialized_record(self):
        client = _make_boto_client(streams=[])
        event = _make_event()

        CloudWatchLogClient(client).append(DESTINATION, event)

        log_events = client.put_log_events.call_args.kwargs["logEvents"]
        assert len(log_events) == 1
        assert isinstance(log_events[0]["timestamp"], int)
        message = json.loads(log_events[0]["message"])
        assert message["messageId"] == "msg-1"
        assert message["eventType"] == "bounce"
        assert message["bounceType"] == "Permanent"
        assert message["rawEvent"]["eventType"] == "Bounce"

    def test_attaches_current_token(self):
        client = _make_boto_client(
            streams=[{"logStreamName": "ses-email-events-stream", "uploadSequenceToken": "tok-9"}]
        )

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is True

        assert client.put_log_events.call_args.kwargs["sequenceToken"] == "tok-9"

    def test_token_conflict_retries_with_expected_token(self):
        client = _make_boto_client(
            streams=[{"logStreamName": "ses-email-events-stream", "uploadSequenceToken": "stale"}]
        )
        client.put_log_events.side_effect = [_token_conflict("ABC123"), {}]

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is True

        assert client.put_log_events.call_count == 2
        first, retry = client.put_log_events.call_args_list
        assert first.kwargs["sequenceToken"] == "stale"
        assert retry.kwargs["sequenceToken"] == "ABC123"
        assert retry.kwargs["logEvents"][0]["message"] == first.kwargs["logEvents"][0]["message"]

    def test_retry_failure_returns_false_without_further_retries(self):
        client = _make_boto_client()
        client.put_log_events.side_effect = [
            _token_conflict("ABC123"),
            _token_conflict("DEF456"),
        ]

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is False

        assert client.put_log_events.call_count == 2

    def test_unparseable_conflict_returns_false_without_retry(self):
        client = _make_boto_client()
        client.put_log_events.side_effect = _client_error(
            "InvalidSequenceTokenException", "sequence token mismatch"
        )

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is False

        client.put_log_events.assert_called_once()

    def test_null_expected_token_retries_without_token(self):
        client = _make_boto_client(
            streams=[{"logStreamName": "ses-email-events-stream", "uploadSequenceToken": "stale"}]
        )
        client.put_log_events.side_effect = [_token_conflict("null"), {}]

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is True

        assert "sequenceToken" not in client.put_log_events.call_args_list[1].kwargs

    def test_other_error_returns_false_without_retry(self):
        client = _make_boto_client()
        client.put_log_events.side_effect = _client_error(
            "ResourceNotFoundException", "The specified log stream does not exist."
        )

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is False

        client.put_log_events.assert_called_once()

    def test_lookup_failure_still_appends(self):
        client = _make_boto_client()
        client.describe_log_streams.side_effect = _client_error(
            "ThrottlingException", operation="DescribeLogStreams"
        )

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is True
        assert "sequenceToken" not in client.put_log_events.call_args.kwargs

    def test_connection_error_returns_false_without_retry(self):
        client = _make_boto_client()
        client.put_log_events.side_effect = EndpointConnectionError(
            endpoint_url="https://logs.us-east-1.amazonaws.com"
        )

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is False

        client.put_log_events.assert_called_once()

    def test_connection_error_on_retry_returns_false(self):
        client = _make_boto_client()
        client.put_log_events.side_effect = [
            _token_conflict("ABC123"),
            EndpointConnectionError(endpoint_url="https://logs.us-east-1.amazonaws.com"),
        ]

        assert CloudWatchLogClient(client).append(DESTINATION, _make_event()) is False

        assert client.put_log_events.call_count == 2
        assert client.put_log_events.call_args.kwargs["sequenceToken"] == "ABC123"


# ---------------------------------------------------------------------------
# check_destination
# ---------------------------------------------------------------------------

class TestCheckDestination:

    def test_reachable(self):
        client = _make_boto_client()
        assert CloudWatchLogClient(client).check_destination(DESTINATION) is True
        client.describe_log_streams.assert_called_once_with(
            logGroupName="/aws/ses/email-events-test", limit=1
        )

    def test_unreachable(self):
        client = _make_boto_client()
        client.describe_log_streams.side_effect = _client_error(
            "ResourceNotFoundException", operation="DescribeLogStreams"
        )
        assert CloudWatchLogClient(client).check_destination(DESTINATION) is False
