"""
Pipeline orchestration for crossmatrix.

This module coordinates a whole pipeline run:
1. Expand and plan the matrix (any configuration error aborts before a job starts)
2. Run one task per job on a worker pool
3. Within each job: install toolchain, build, test, publish, strictly in order
4. Join all jobs and aggregate every job's terminal state

Job failures are recorded on the job's result and never cancel sibling jobs.
A global abort stops every in-flight job.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional

from ..build.build_executor import BuildExecutor
from ..build.test_runner import TestRunner
from ..config.matrix_config import MatrixConfig
from ..deploy.publisher import ArtifactPublisher, ArtifactStore, LocalArtifactStore
from ..errors import (
    BuildError,
    PipelineAborted,
    PublishError,
    TestFailureError,
    ToolchainUnavailableError,
)
from ..matrix.planner import JobDescriptor, JobPlanner
from ..packages.host import HostDetector
from ..packages.toolchain import ToolchainInstaller
from ..process_tracker import ProcessTracker
from .state import JobResult, JobState, PipelineResult

WORK_DIR_ENV = "CROSSMATRIX_WORK_DIR"

# Failure state for an unexpected error raised while a job is in a given state
_UNEXPECTED_FAILURE = {
    JobState.PLANNED: JobState.TOOLCHAIN_UNAVAILABLE,
    JobState.BUILDING: JobState.BUILD_FAILED,
    JobState.BUILT: JobState.TEST_FAILED,
    JobState.TESTING: JobState.TEST_FAILED,
    JobState.TESTED: JobState.PUBLISH_FAILED,
}


def default_work_dir(project_dir: Path) -> Path:
    """Work directory for target dirs, logs and caches."""
    override = os.environ.get(WORK_DIR_ENV)
    if override:
        return Path(override)
    return project_dir / ".crossmatrix"


def select_jobs(
    jobs: Iterable[JobDescriptor],
    oses: Optional[Iterable[str]] = None,
    toolchains: Optional[Iterable[str]] = None,
    host_only: bool = False,
) -> List[JobDescriptor]:
    """Select a subset of planned jobs, keeping plan order."""
    os_filter = set(oses) if oses else None
    toolchain_filter = set(toolchains) if toolchains else None
    selected = []
    for job in jobs:
        if os_filter is not None and job.os not in os_filter:
            continue
        if toolchain_filter is not None and job.toolchain not in toolchain_filter:
            continue
        if host_only and not HostDetector.matches_host(job.os):
            continue
        selected.append(job)
    return selected


class PipelineOrchestrator:
    """
    Runs the build-test-publish pipeline for every job in the matrix.

    Example usage:
        orchestrator = PipelineOrchestrator(matrix_config, project_dir=Path("."))
        jobs = orchestrator.plan()
        result = orchestrator.run(jobs)
        for job_result in result.results:
            print(job_result.job.label, job_result.state.value)
    """

    def __init__(
        self,
        config: MatrixConfig,
        project_dir: Path,
        work_dir: Optional[Path] = None,
        store: Optional[ArtifactStore] = None,
        tracker: Optional[ProcessTracker] = None,
        installer: Optional[ToolchainInstaller] = None,
        builder: Optional[BuildExecutor] = None,
        tester: Optional[TestRunner] = None,
        publisher: Optional[ArtifactPublisher] = None,
        max_workers: Optional[int] = None,
        verbose: bool = False,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Immutable matrix configuration
            project_dir: Cargo project directory
            work_dir: Per-job target directories and logs (default: <project>/.crossmatrix)
            store: Artifact store (default: local directory store)
            tracker: Process tracker shared by all jobs
            installer, builder, tester, publisher: Stage implementations
                (defaults are created from the other arguments)
            max_workers: Worker pool size (default: one worker per job)
            verbose: Enable verbose output
        """
        self.config = config
        self.project_dir = Path(project_dir).resolve()
        self.work_dir = work_dir if work_dir is not None else default_work_dir(self.project_dir)
        self.tracker = tracker or ProcessTracker()
        self.installer = installer or ToolchainInstaller(
            self.tracker, cache_dir=self.work_dir / "cache", show_progress=verbose
        )
        self.builder = builder or BuildExecutor(
            self.project_dir, self.work_dir, self.tracker, profile=config.profile
        )
        self.tester = tester or TestRunner(self.project_dir, self.work_dir, self.tracker)
        if publisher is None:
            if store is None:
                artifact_root = (
                    self.project_dir / config.artifact_dir
                    if config.artifact_dir
                    else self.work_dir / "artifacts"
                )
                store = LocalArtifactStore(artifact_root)
            publisher = ArtifactPublisher(store)
        self.publisher = publisher
        self.max_workers = max_workers
        self.verbose = verbose

    def plan(self) -> List[JobDescriptor]:
        """
        Expand and plan the matrix.

        Raises:
            PlanningError: On any configuration problem
        """
        return JobPlanner(self.config).plan()

    def run(self, jobs: Optional[List[JobDescriptor]] = None) -> PipelineResult:
        """
        Run every job and wait for all of them.

        Args:
            jobs: Planned jobs to run (default: plan the whole matrix)

        Returns:
            PipelineResult with one JobResult per job, in plan order

        Raises:
            PlanningError: If jobs is None and planning fails (no job runs)
        """
        if jobs is None:
            jobs = self.plan()
        if not jobs:
            logging.warning("No jobs selected")
            return PipelineResult(results=[])

        workers = self.max_workers or len(jobs)
        logging.info(f"Running {len(jobs)} jobs on {workers} workers")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="job") as pool:
            futures = [pool.submit(self.run_job, job) for job in jobs]
            try:
                results = [future.result() for future in futures]
            except KeyboardInterrupt:
                # Kill in-flight jobs so the pool can shut down
                self.abort()
                raise

        pipeline_result = PipelineResult(results=results)
        logging.info(
            f"Pipeline finished: {len(results) - len(pipeline_result.failures)} published, "
            + f"{len(pipeline_result.failures)} failed"
        )
        return pipeline_result

    def cancel(self, job_id: str) -> None:
        """Cancel one job; sibling jobs keep running.

        The job ends as aborted whether it is waiting between stages or inside
        a toolchain command.
        """
        self.tracker.kill_job(job_id)

    def abort(self) -> None:
        """Abort the whole pipeline and kill every in-flight toolchain process."""
        self.tracker.abort()

    def _check_cancelled(self, job: JobDescriptor) -> None:
        self.tracker.check_cancelled(job.job_id)

    def run_job(self, job: JobDescriptor) -> JobResult:
        """
        Run one job through install, build, test and publish.

        Never raises for job-level failures: the outcome is recorded on the
        returned JobResult.
        """
        result = JobResult(job=job)
        try:
            self._run_stages(job, result)
        except PipelineAborted as e:
            result.advance(JobState.ABORTED, str(e))
        except Exception as e:
            logging.exception(f"[{job.job_id}] Unexpected error")
            result.advance(_UNEXPECTED_FAILURE[result.state], f"Unexpected error: {type(e).__name__}: {e}")

        if result.state is JobState.PUBLISHED:
            logging.info(f"[{job.job_id}] {result.state.value}")
        else:
            logging.error(f"[{job.job_id}] {result.state.value}: {result.reason}")
        return result

    def _run_stages(self, job: JobDescriptor, result: JobResult) -> None:
        self._check_cancelled(job)
        try:
            self.installer.ensure(
                job.toolchain,
                job_id=job.job_id,
                components=self.config.components,
                targets=(job.target,),
            )
        except ToolchainUnavailableError as e:
            result.advance(JobState.TOOLCHAIN_UNAVAILABLE, str(e))
            return

        self._check_cancelled(job)
        result.advance(JobState.BUILDING)
        try:
            artifact = self.builder.build(job)
        except BuildError as e:
            result.advance(JobState.BUILD_FAILED, str(e))
            return
        result.advance(JobState.BUILT)

        self._check_cancelled(job)
        result.advance(JobState.TESTING)
        try:
            self.tester.run(job)
        except TestFailureError as e:
            result.advance(JobState.TEST_FAILED, str(e))
            return
        result.advance(JobState.TESTED)

        self._check_cancelled(job)
        try:
            result.location = self.publisher.publish(artifact)
        except PublishError as e:
            result.advance(JobState.PUBLISH_FAILED, str(e))
            return
        result.advance(JobState.PUBLISHED)
