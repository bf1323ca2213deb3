"""Matrix expansion and job planning for crossmatrix."""

from .expander import MatrixEntry, MatrixExpander
from .planner import JobDescriptor, JobPlanner, merge_overrides

__all__ = [
    "MatrixEntry",
    "MatrixExpander",
    "JobDescriptor",
    "JobPlanner",
    "merge_overrides",
]
