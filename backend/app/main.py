"""
SES Event Logger HTTP API.
FastAPI application exposing the SNS subscription endpoint and health checks.
"""

import logging

from fastapi import Depends, FastAPI, HTTPException

from app.config import Settings, get_settings
from app.handler import get_dispatcher
from app.routers import sns
from app.services.batch_dispatcher import BatchDispatcher

logger = logging.getLogger(__name__)

app = FastAPI(
    title="SES Event Logger",
    description="Receives SES email notifications from SNS and appends them to CloudWatch Logs",
    version="0.1.0",
)

app.include_router(sns.router, prefix="/api/sns", tags=["sns"])


@app.on_event("startup")
async def log_startup_destination() -> None:
    settings = get_settings()
    logger.info(
        f"SES Event Logger writing to {settings.log_group_name}/"
        f"{settings.log_stream_name} ({settings.aws_region})"
    )


@app.get("/")
async def root():
    return {"message": "SES Event Logger", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/logs")
def health_logs(
    settings: Settings = Depends(get_settings),
    dispatcher: BatchDispatcher = Depends(get_dispatcher),
):
    """
    Check that the CloudWatch log group is reachable.

    Returns 503 when describe_log_streams fails (credentials, region,
    missing group).
    """
    if not dispatcher.log_client.check_destination(settings.destination):
        raise HTTPException(
            status_code=503,
            detail=f"CloudWatch log group {settings.log_group_name!r} is not reachable",
        )
    return {
        "status": "ok",
        "log_group": settings.log_group_name,
        "log_stream": settings.log_stream_name,
    }
