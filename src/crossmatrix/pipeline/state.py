"""
Per-job state machine.

    planned -> building -> {built | build_failed}
    built   -> testing  -> {tested | test_failed}
    tested  -> {published | publish_failed}

A job that cannot get its toolchain goes planned -> toolchain_unavailable.
Any non-terminal state may move to aborted.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..errors import JobStateError
from ..matrix.planner import JobDescriptor


class JobState(Enum):
    """Job state enumeration."""

    PLANNED = "planned"
    BUILDING = "building"
    BUILT = "built"
    BUILD_FAILED = "build_failed"
    TESTING = "testing"
    TESTED = "tested"
    TEST_FAILED = "test_failed"
    PUBLISHED = "published"
    PUBLISH_FAILED = "publish_failed"
    TOOLCHAIN_UNAVAILABLE = "toolchain_unavailable"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_failure(self) -> bool:
        return self.is_terminal and self is not JobState.PUBLISHED


TERMINAL_STATES = frozenset(
    {
        JobState.BUILD_FAILED,
        JobState.TEST_FAILED,
        JobState.PUBLISHED,
        JobState.PUBLISH_FAILED,
        JobState.TOOLCHAIN_UNAVAILABLE,
        JobState.ABORTED,
    }
)

TRANSITIONS = {
    JobState.PLANNED: {JobState.BUILDING, JobState.TOOLCHAIN_UNAVAILABLE},
    JobState.BUILDING: {JobState.BUILT, JobState.BUILD_FAILED},
    JobState.BUILT: {JobState.TESTING},
    JobState.TESTING: {JobState.TESTED, JobState.TEST_FAILED},
    JobState.TESTED: {JobState.PUBLISHED, JobState.PUBLISH_FAILED},
}


@dataclass
class JobResult:
    """Progress and outcome of one job.

    Attributes:
        job: The job descriptor
        state: Current state
        history: Every state the job has been in, in order
        reason: Failure reason for failed terminal states
        location: Where the artifact was published
        started_at: Unix timestamp when the job was created
        finished_at: Unix timestamp when the job reached a terminal state
    """

    job: JobDescriptor
    state: JobState = JobState.PLANNED
    history: List[JobState] = field(default_factory=lambda: [JobState.PLANNED])
    reason: Optional[str] = None
    location: Optional[str] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    def advance(self, new_state: JobState, reason: Optional[str] = None) -> None:
        """Move to a new state.

        Raises:
            JobStateError: If the transition is not allowed
        """
        allowed = TRANSITIONS.get(self.state, set())
        if new_state is JobState.ABORTED and not self.state.is_terminal:
            allowed = allowed | {JobState.ABORTED}
        if new_state not in allowed:
            raise JobStateError(
                f"Job {self.job.label}: illegal transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)
        if reason is not None:
            self.reason = reason
        if new_state.is_terminal:
            self.finished_at = time.time()

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "job_id": self.job.job_id,
            "os": self.job.os,
            "toolchain": self.job.toolchain,
            "artifact_name": self.job.artifact_name,
            "state": self.state.value,
            "history": [state.value for state in self.history],
            "reason": self.reason,
            "location": self.location,
            "duration": round(self.duration, 3),
        }


@dataclass
class PipelineResult:
    """Aggregate outcome of a pipeline run, one JobResult per job."""

    results: List[JobResult]

    @property
    def success(self) -> bool:
        return all(result.state is JobState.PUBLISHED for result in self.results)

    @property
    def failures(self) -> List[JobResult]:
        return [result for result in self.results if result.state is not JobState.PUBLISHED]

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "jobs": [result.to_dict() for result in self.results],
        }
