"""
Queue data models.

A QueuedJob is the backend-neutral envelope around a JSON payload. Its
to_dict/from_dict form is what durable backends store.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobState(str, Enum):
    """Where a job sits in the queue."""

    WAITING = "waiting"
    DELAYED = "delayed"  # Waiting for a retry backoff to elapse
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"  # Attempts exhausted (dead set)


@dataclass
class QueuedJob:
    """A job and its delivery bookkeeping."""

    id: str
    name: str
    payload: dict[str, Any]
    priority: int
    seq: int  # Insertion order, FIFO tiebreak within a priority
    max_attempts: int
    attempts_made: int = 0
    state: JobState = JobState.WAITING
    available_at: float = 0.0
    created_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    failed_reason: str | None = None
    result: dict[str, Any] | None = None

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempts_made, 0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "name": self.name,
            "payload": self.payload,
            "priority": self.priority,
            "seq": self.seq,
            "max_attempts": self.max_attempts,
            "attempts_made": self.attempts_made,
            "state": self.state.value,
            "available_at": self.available_at,
            "created_at": self.created_at,
            "finished_at": self.finished_at,
            "failed_reason": self.failed_reason,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueuedJob":
        return cls(
            id=data["id"],
            name=data["name"],
            payload=data["payload"],
            priority=data["priority"],
            seq=data["seq"],
            max_attempts=data["max_attempts"],
            attempts_made=data.get("attempts_made", 0),
            state=JobState(data.get("state", JobState.WAITING.value)),
            available_at=data.get("available_at", 0.0),
            created_at=data.get("created_at", 0.0),
            finished_at=data.get("finished_at"),
            failed_reason=data.get("failed_reason"),
            result=data.get("result"),
        )


@dataclass
class QueueCounts:
    """Number of jobs per state."""

    waiting: int = 0
    active: int = 0
    delayed: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "delayed": self.delayed,
            "completed": self.completed,
            "failed": self.failed,
        }


@dataclass
class JobRetention:
    """How many finished jobs to keep, and for how long.

    A max age of None keeps jobs regardless of age.
    """

    keep_completed: int = 100
    completed_max_age_s: float | None = 24 * 60 * 60
    keep_failed: int = 500
    failed_max_age_s: float | None = None
