"""
Logging and error telemetry setup.

configure_logging() is called by both entry points. On Lambda the runtime has
already attached a handler to the root logger, so only the level is changed.

init_telemetry() turns on Sentry when SENTRY_DSN is configured. It runs when
the entry point module is imported; Sentry is initialised at most once per
process. On Lambda the AwsLambdaIntegration reports handler failures itself,
so capture_exception() only reports when that integration is not active.
"""

import logging
import os

import sentry_sdk
from sentry_sdk.integrations.aws_lambda import AwsLambdaIntegration

from app.config import Settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_telemetry_enabled = False
_lambda_integration_enabled = False


def running_on_lambda() -> bool:
    return bool(os.getenv("AWS_LAMBDA_FUNCTION_NAME"))


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=LOG_FORMAT)


def init_telemetry(settings: Settings) -> bool:
    """
    Initialise Sentry from settings.

    Returns True when telemetry is active after the call.
    """
    global _telemetry_enabled, _lambda_integration_enabled

    if _telemetry_enabled:
        return True
    if not settings.sentry_dsn:
        logger.debug("SENTRY_DSN not set; error telemetry disabled")
        return False

    on_lambda = running_on_lambda()
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        integrations=[AwsLambdaIntegration()] if on_lambda else [],
    )
    _telemetry_enabled = True
    _lambda_integration_enabled = on_lambda
    logger.info(f"Sentry error telemetry enabled (environment={settings.environment})")
    return True


def capture_exception(exc: BaseException) -> None:
    """Report exc to Sentry unless the Lambda integration will report it."""
    if _telemetry_enabled and not _lambda_integration_enabled:
        sentry_sdk.capture_exception(exc)
