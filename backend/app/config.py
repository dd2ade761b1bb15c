"""
Runtime configuration for the SES event logger.

All settings come from environment variables; a ``.env`` file next to the
process working directory is loaded first (existing variables win).

Environment variables
---------------------
STAGE                  Deployment stage, used to derive the log group name
                       (default: "dev").
LOG_GROUP_NAME         Explicit CloudWatch log group. Overrides the derived
                       name /aws/ses/email-events-<STAGE>.
LOG_STREAM_NAME        Log stream inside the group
                       (default: "ses-email-events-stream").
AWS_REGION             Region for the CloudWatch Logs client. Falls back to
                       AWS_DEFAULT_REGION, then "us-east-1".
SENTRY_DSN             Enables Sentry error telemetry when set.
ENVIRONMENT            Telemetry environment tag. Falls back to NODE_ENV,
                       then STAGE.
EXPECTED_EVENT_SOURCE  Batch records with any other EventSource are skipped
                       (default: "aws:sns").
SNS_ENDPOINT_TOKEN     Shared token required on the HTTP adapter's ?token=
                       query parameter. Unset disables the check.
LOG_LEVEL              Root log level (default: "INFO").
"""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from app.models.ses_event import LogDestination

load_dotenv()

DEFAULT_LOG_STREAM_NAME = "ses-email-events-stream"
DEFAULT_EVENT_SOURCE = "aws:sns"
DEFAULT_REGION = "us-east-1"


def log_group_for_stage(stage: str) -> str:
    """Return the log group name a stage writes to, e.g. /aws/ses/email-events-prod."""
    return f"/aws/ses/email-events-{stage}"


class Settings(BaseModel):
    """Process-wide settings, built once and passed to the services explicitly."""

    model_config = {"frozen": True}

    stage: str = "dev"
    log_group_name: str = log_group_for_stage("dev")
    log_stream_name: str = DEFAULT_LOG_STREAM_NAME
    aws_region: str = DEFAULT_REGION
    sentry_dsn: Optional[str] = None
    environment: str = "dev"
    expected_event_source: str = DEFAULT_EVENT_SOURCE
    sns_endpoint_token: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        stage = os.getenv("STAGE", "").strip() or "dev"
        return cls(
            stage=stage,
            log_group_name=os.getenv("LOG_GROUP_NAME") or log_group_for_stage(stage),
            log_stream_name=os.getenv("LOG_STREAM_NAME") or DEFAULT_LOG_STREAM_NAME,
            aws_region=(
                os.getenv("AWS_REGION")
                or os.getenv("AWS_DEFAULT_REGION")
                or DEFAULT_REGION
            ),
            sentry_dsn=os.getenv("SENTRY_DSN") or None,
            environment=os.getenv("ENVIRONMENT") or os.getenv("NODE_ENV") or stage,
            expected_event_source=(
                os.getenv("EXPECTED_EVENT_SOURCE") or DEFAULT_EVENT_SOURCE
            ),
            sns_endpoint_token=os.getenv("SNS_ENDPOINT_TOKEN") or None,
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )

    @property
    def destination(self) -> LogDestination:
        return LogDestination(
            log_group_name=self.log_group_name,
            log_stream_name=self.log_stream_name,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the settings for this process (read from the environment once)."""
    return Settings.from_env()
