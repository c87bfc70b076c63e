"""Core types for sample capture and adaptation."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Sample:
    """A stored (waveform, transcript) pair used for personalization."""
    id: int
    waveform: bytes = field(repr=False)
    transcript: str

    @property
    def size(self) -> int:
        return len(self.waveform)

    def as_pair(self):
        return (self.waveform, self.transcript)


class JobStatus(str, Enum):
    """Adaptation job lifecycle."""
    PENDING = "pending"       # Accepted, not started
    RUNNING = "running"       # Fetching batch / adapting
    SUCCEEDED = "succeeded"   # Engine returned normally
    FAILED = "failed"         # Batch or engine error, never retried


@dataclass
class AdaptationJob:
    """One fire-and-forget adaptation run."""
    id: str
    created_at: datetime
    status: str = JobStatus.PENDING.value

    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    batch_ids: list = field(default_factory=list)
    error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED.value, JobStatus.FAILED.value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "batch_ids": list(self.batch_ids),
            "error": self.error,
        }
