"""Exception hierarchy for crossmatrix.

Planning errors are raised before any job runs and abort the whole pipeline.
Job errors are caught at the job boundary by the orchestrator and recorded on
the job's result; they never propagate to sibling jobs.
"""

from typing import Optional


class CrossMatrixError(Exception):
    """Base class for all crossmatrix errors."""

    pass


class PipelineConfigError(CrossMatrixError):
    """Raised when the pipeline configuration file is missing or malformed."""

    pass


# Planning errors


class PlanningError(CrossMatrixError):
    """Raised when the matrix cannot be expanded or planned."""

    pass


class MatrixConfigError(PlanningError):
    """Raised for structurally invalid axes or override records."""

    pass


class EmptyAxisError(MatrixConfigError):
    """Raised when an axis has no values (the product would be empty)."""

    def __init__(self, axis_name: str):
        self.axis_name = axis_name
        super().__init__(f"Axis '{axis_name}' has no values; the matrix would produce no jobs")


class ConfigurationConflictError(PlanningError):
    """Raised when two override records supply the same field for one entry."""

    def __init__(self, field_name: str, entry_label: str, first: str, second: str):
        self.field_name = field_name
        self.entry_label = entry_label
        self.first = first
        self.second = second
        super().__init__(
            f"Configuration conflict for {entry_label}: field '{field_name}' is supplied "
            + f"by both [{first}] and [{second}]"
        )


class MissingFieldError(PlanningError):
    """Raised when a resolved job lacks a field required downstream."""

    def __init__(self, entry_label: str, missing: list):
        self.entry_label = entry_label
        self.missing = list(missing)
        super().__init__(f"Job {entry_label} is missing required fields: {', '.join(self.missing)}")


class ArtifactNameCollisionError(PlanningError):
    """Raised when two jobs would publish under the same artifact name."""

    pass


class JobIdCollisionError(PlanningError):
    """Raised when two jobs would share a job id (and so a work directory)."""

    pass


# Job errors


class JobError(CrossMatrixError):
    """Base class for failures scoped to a single job."""

    pass


class ToolchainUnavailableError(JobError):
    """Raised when the requested toolchain cannot be installed."""

    pass


class BuildError(JobError):
    """Raised when the build command cannot be run or fails."""

    pass


class TestFailureError(JobError):
    """Raised when the test suite fails."""

    __test__ = False


class StorageError(JobError):
    """Raised by an artifact store when it cannot store an artifact."""

    def __init__(self, message: str, name: Optional[str] = None):
        self.name = name
        super().__init__(message)


class PublishError(JobError):
    """Raised when an artifact cannot be published."""

    pass


class JobStateError(CrossMatrixError):
    """Raised on an illegal job state transition."""

    pass


class PipelineAborted(CrossMatrixError):
    """Raised inside a job when the global abort signal has been set."""

    pass
