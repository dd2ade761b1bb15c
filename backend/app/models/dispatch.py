"""
Per-invocation outcome models for the batch dispatcher.

The Lambda entry point does not return these to its caller; they exist for
logging and for the HTTP adapter's response body.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RecordStatus(str, Enum):
    APPENDED = "appended"
    APPEND_FAILED = "append_failed"
    DECODE_FAILED = "decode_failed"
    SKIPPED_SOURCE = "skipped_source"
    SKIPPED_IRRELEVANT = "skipped_irrelevant"


class RecordOutcome(BaseModel):
    """What happened to one transport record."""

    index: int
    status: RecordStatus
    message_id: Optional[str] = None
    event_type: Optional[str] = None
    recipient: Optional[str] = None


class DispatchSummary(BaseModel):
    """Aggregate of all RecordOutcomes for one batch."""

    outcomes: list[RecordOutcome] = []

    def count(self, status: RecordStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def received(self) -> int:
        return len(self.outcomes)

    @property
    def appended(self) -> int:
        return self.count(RecordStatus.APPENDED)

    @property
    def failed(self) -> int:
        return self.count(RecordStatus.APPEND_FAILED) + self.count(
            RecordStatus.DECODE_FAILED
        )

    @property
    def skipped(self) -> int:
        return self.count(RecordStatus.SKIPPED_SOURCE) + self.count(
            RecordStatus.SKIPPED_IRRELEVANT
        )

    def as_log_fields(self) -> dict[str, int]:
        return {
            "received": self.received,
            "appended": self.appended,
            "failed": self.failed,
            "skipped": self.skipped,
        }
