"""Pipeline execution for crossmatrix.

This package runs planned jobs on a worker pool, tracks their toolchain
processes and aggregates their terminal states.
"""

from ..process_tracker import CommandResult, ProcessTracker
from .state import JobResult, JobState, PipelineResult
from .orchestrator import PipelineOrchestrator, default_work_dir, select_jobs

__all__ = [
    "CommandResult",
    "ProcessTracker",
    "JobResult",
    "JobState",
    "PipelineResult",
    "PipelineOrchestrator",
    "default_work_dir",
    "select_jobs",
]
