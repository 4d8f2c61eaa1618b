"""Domain models for queued summarization jobs."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Literal, Optional

from summarize_this.errors import PipelineError
from summarize_this.summarizer.models import SummarizationRequest, SummarizationResult

JobState = Literal["queued", "active", "completed", "failed", "cancelled"]

TERMINAL_STATES: FrozenSet[str] = frozenset({"completed", "failed", "cancelled"})

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "queued": frozenset({"active", "cancelled"}),
    "active": frozenset({"queued", "completed", "failed", "cancelled"}),
}

PROGRESS: Dict[str, float] = {
    "queued": 0.0,
    "active": 0.5,
    "completed": 1.0,
    "failed": 1.0,
    "cancelled": 1.0,
}


class InvalidTransition(PipelineError):
    def __init__(self, job_id: str, from_state: str, to_state: str):
        super().__init__(
            f"Job {job_id} cannot move from {from_state} to {to_state}",
            {"job_id": job_id, "from": from_state, "to": to_state},
        )


@dataclass(frozen=True, slots=True)
class JobTransition:
    from_state: str
    to_state: str
    at: float
    reason: str = ""


@dataclass(slots=True)
class Job:
    """Represents one queued execution of a summarization request."""

    request: SummarizationRequest
    reservation_id: str
    reserved_credits: int
    max_attempts: int
    fingerprint: str = ""
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: JobState = "queued"
    attempts: int = 0
    last_error: Optional[PipelineError] = None
    scheduled_at: float = 0.0
    sequence: int = 0
    worker_id: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    result: Optional[SummarizationResult] = None
    cancel_requested: bool = False
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    history: List[JobTransition] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def progress(self) -> float:
        return PROGRESS[self.state]

    @property
    def priority(self) -> int:
        return self.request.priority

    def transition(self, to_state: JobState, at: float, reason: str = "") -> None:
        if to_state not in TRANSITIONS.get(self.state, frozenset()):
            raise InvalidTransition(self.job_id, self.state, to_state)
        self.history.append(JobTransition(self.state, to_state, at, reason))
        self.state = to_state
        if to_state in TERMINAL_STATES:
            self.finished_at = at
            self.reserved_credits = 0
            self.worker_id = None
