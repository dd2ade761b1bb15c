#!/usr/bin/env python3
"""
Dev helper: send a test SES notification through the event logger.

Builds a realistic SES event of the chosen kind, wraps it the way SNS does,
and either runs it through the Lambda handler in-process or POSTs it to the
/api/sns/events endpoint of a running backend.

Usage
-----
# Print the SNS message that would be sent
python scripts/send_test_event.py --dry-run

# Run the Lambda handler locally against real CloudWatch Logs
python scripts/send_test_event.py --local --kind bounce

# Legacy notificationType shape (identity notifications)
python scripts/send_test_event.py --local --kind complaint --legacy

# POST to a running backend (uvicorn app.main:app)
python scripts/send_test_event.py --url http://localhost:8000

Environment / .env
------------------
LOG_GROUP_NAME / STAGE   Destination log group (see backend/app/config.py).
AWS_REGION               Region for the CloudWatch Logs client.
SNS_ENDPOINT_TOKEN       Appended as ?token= when posting to the backend.
"""

import argparse
import json
import os
import sys
import textwrap
import uuid
from pathlib import Path

import httpx
from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# SES event builders
# ---------------------------------------------------------------------------

def _make_mail(source: str, recipient: str, subject: str) -> dict:
    return {
        "timestamp": "2023-01-01T12:00:00.000Z",
        "source": source,
        "sourceArn": "arn:aws:ses:us-east-1:123456789012:identity/example.com",
        "sourceIp": "192.0.2.1",
        "sendingAccountId": "123456789012",
        "messageId": f"0000014a-{uuid.uuid4()}-000000",
        "destination": [recipient],
        "headersTruncated": False,
        "headers": [
            {"name": "From", "value": source},
            {"name": "To", "value": recipient},
            {"name": "Subject", "value": subject},
        ],
        "commonHeaders": {
            "from": [source],
            "to": [recipient],
            "subject": subject,
        },
    }


def _kind_section(kind: str, recipient: str) -> tuple[str, dict]:
    """Return (section key, section body) for a kind, e.g. ("bounce", {...})."""
    if kind == "bounce":
        return "bounce", {
            "bounceType": "Permanent",
            "bounceSubType": "General",
            "bouncedRecipients": [
                {
                    "emailAddress": recipient,
                    "action": "failed",
                    "status": "5.1.1",
                    "diagnosticCode": "smtp; 550 5.1.1 user unknown",
                }
            ],
            "timestamp": "2023-01-01T12:00:05.000Z",
        }
    if kind == "complaint":
        return "complaint", {
            "complaintFeedbackType": "abuse",
            "complainedRecipients": [{"emailAddress": recipient}],
            "timestamp": "2023-01-01T12:00:05.000Z",
        }
    if kind == "delivery":
        return "delivery", {
            "timestamp": "2023-01-01T12:00:05.000Z",
            "processingTimeMillis": 5000,
            "recipients": [recipient],
            "smtpResponse": "250 OK",
            "reportingMTA": "a8-70.smtp-out.amazonses.com",
        }
    if kind == "reject":
        return "reject", {"reason": "Bad content"}
    if kind == "renderingFailure":
        return "failure", {
            "errorMessage": "Attribute 'name' is not present in the rendering data.",
            "templateName": "WelcomeTemplate",
        }
    return "send", {}


_EVENT_TYPE_NAMES = {
    "bounce": "Bounce",
    "complaint": "Complaint",
    "delivery": "Delivery",
    "send": "Send",
    "reject": "Reject",
    "renderingFailure": "Rendering Failure",
}


def build_ses_event(
    kind: str,
    source: str,
    recipient: str,
    subject: str,
    legacy: bool = False,
) -> dict:
    """
    Build an SES notification.

    Configuration-set events use ``eventType``; with legacy=True the
    identity-notification shape with ``notificationType`` is produced.
    """
    key, section = _kind_section(kind, recipient)
    event = {"mail": _make_mail(source, recipient, subject), key: section}
    if legacy:
        event["notificationType"] = _EVENT_TYPE_NAMES[kind]
    else:
        event["eventType"] = _EVENT_TYPE_NAMES[kind]
    return event


def build_sns_message(ses_event: dict) -> dict:
    """Wrap an SES event the way SNS delivers it over HTTP."""
    return {
        "Type": "Notification",
        "MessageId": str(uuid.uuid4()),
        "TopicArn": "arn:aws:sns:us-east-1:123456789012:ses-events",
        "Message": json.dumps(ses_event),
        "Timestamp": "2023-01-01T12:00:06.000Z",
    }


# ---------------------------------------------------------------------------
# Delivery modes
# ---------------------------------------------------------------------------

def _run_local(sns_message: dict) -> int:
    backend_dir = Path(__file__).resolve().parent.parent / "backend"
    sys.path.insert(0, str(backend_dir))
    from app.handler import ses_events_handler

    event = {"Records": [{"EventSource": "aws:sns", "Sns": sns_message}]}
    context = argparse.Namespace(
        function_name="ses-events-processor-test",
        aws_request_id="test-request-id",
    )
    result = ses_events_handler(event, context)
    print(json.dumps(result, indent=2))
    return 0


def _post(url: str, sns_message: dict) -> int:
    endpoint = f"{url.rstrip('/')}/api/sns/events"
    params = {}
    token = os.getenv("SNS_ENDPOINT_TOKEN")
    if token:
        params["token"] = token

    print(f"Endpoint  : {endpoint}")
    try:
        response = httpx.post(
            endpoint,
            json=sns_message,
            params=params,
            headers={"x-amz-sns-message-type": "Notification"},
            timeout=30,
        )
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1

    symbol = "OK" if response.status_code == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {response.status_code}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)
    return 0 if response.status_code == 200 else 1


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_event.py",
        description="Send a test SES notification through the event logger.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_event.py --dry-run
              python scripts/send_test_event.py --local --kind bounce
              python scripts/send_test_event.py --url http://localhost:8000
        """),
    )
    parser.add_argument(
        "--kind",
        default="delivery",
        choices=list(_EVENT_TYPE_NAMES),
        help="SES event kind (default: delivery)",
    )
    parser.add_argument(
        "--legacy",
        action="store_true",
        help="Use notificationType instead of eventType.",
    )
    parser.add_argument("--from", dest="source", default="sender@example.com")
    parser.add_argument("--to", dest="recipient", default="recipient@example.com")
    parser.add_argument("--subject", default="Test Email")
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--local",
        action="store_true",
        help="Invoke the Lambda handler in-process instead of posting.",
    )
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the SNS message without sending it.",
    )
    args = parser.parse_args()

    ses_event = build_ses_event(
        args.kind, args.source, args.recipient, args.subject, legacy=args.legacy
    )
    sns_message = build_sns_message(ses_event)

    if args.dry_run:
        print(json.dumps({**sns_message, "Message": ses_event}, indent=2))
        return 0
    if args.local:
        return _run_local(sns_message)
    return _post(args.url, sns_message)


if __name__ == "__main__":
    sys.exit(main())
