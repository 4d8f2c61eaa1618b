"""Pipeline coordinator and the events it publishes."""

from summarize_this.pipeline.coordinator import (
    JobStatus,
    PipelineCoordinator,
    Response,
    build_coordinator,
)
from summarize_this.pipeline.events import EventBus, PipelineEvent

__all__ = [
    "EventBus",
    "JobStatus",
    "PipelineCoordinator",
    "PipelineEvent",
    "Response",
    "build_coordinator",
]
