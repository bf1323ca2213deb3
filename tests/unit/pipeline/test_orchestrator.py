"""
Unit tests for PipelineOrchestrator.
"""

import sys
import threading
import time
from dataclasses import replace
from unittest.mock import Mock, patch

import pytest

from crossmatrix.build import Artifact
from crossmatrix.errors import (
    BuildError,
    PipelineAborted,
    PublishError,
    TestFailureError,
    ToolchainUnavailableError,
)
from crossmatrix.pipeline import JobState, PipelineOrchestrator, ProcessTracker, select_jobs
from crossmatrix.pipeline.orchestrator import WORK_DIR_ENV, default_work_dir


@pytest.fixture
def stages(tmp_path):
    """Mock stage implementations that succeed by default."""
    installer = Mock()
    builder = Mock()
    builder.build.side_effect = lambda job: Artifact(path=tmp_path / job.job_id, job=job)
    tester = Mock()
    publisher = Mock()
    publisher.publish.side_effect = lambda artifact: f"store://{artifact.name}"
    return {"installer": installer, "builder": builder, "tester": tester, "publisher": publisher}


@pytest.fixture
def orchestrator(aarf_config, tmp_path, stages):
    return PipelineOrchestrator(
        aarf_config,
        project_dir=tmp_path,
        work_dir=tmp_path / "work",
        tracker=ProcessTracker(),
        **stages,
    )


def _states(result):
    return {(r.job.os, r.job.toolchain): r.state for r in result.results}


class TestPipelineOrchestrator:
    """Test suite for PipelineOrchestrator."""

    def test_all_jobs_published(self, orchestrator, stages):
        result = orchestrator.run()

        assert result.success
        assert result.exit_code == 0
        assert len(result.results) == 6
        assert all(r.state is JobState.PUBLISHED for r in result.results)
        assert stages["publisher"].publish.call_count == 6
        assert result.results[0].location == "store://aarf ubuntu-latest nightly-2023-04-16"

    def test_results_keep_plan_order(self, orchestrator):
        jobs = orchestrator.plan()
        result = orchestrator.run(jobs)
        assert [r.job for r in result.results] == jobs

    def test_stages_run_in_order(self, orchestrator, stages):
        calls = Mock()
        calls.attach_mock(stages["installer"].ensure, "ensure")
        calls.attach_mock(stages["builder"].build, "build")
        calls.attach_mock(stages["tester"].run, "test")
        calls.attach_mock(stages["publisher"].publish, "publish")
        job = orchestrator.plan()[0]

        result = orchestrator.run_job(job)

        assert [c[0] for c in calls.mock_calls] == ["ensure", "build", "test", "publish"]
        assert result.history == [
            JobState.PLANNED,
            JobState.BUILDING,
            JobState.BUILT,
            JobState.TESTING,
            JobState.TESTED,
            JobState.PUBLISHED,
        ]

    def test_installer_gets_components_and_target(self, orchestrator, stages):
        job = orchestrator.plan()[0]
        orchestrator.run_job(job)

        stages["installer"].ensure.assert_called_once_with(
            "nightly-2023-04-16",
            job_id=job.job_id,
            components=("rust-src",),
            targets=("x86_64-unknown-linux-gnu",),
        )

    def test_one_build_failure_is_isolated(self, orchestrator, stages, tmp_path):
        """Test a failing (windows, nightly) build fails only that job."""

        def build(job):
            if job.os == "windows-latest" and job.toolchain == "nightly-2023-04-16":
                raise BuildError("error: linking with `link.exe` failed")
            return Artifact(path=tmp_path / job.job_id, job=job)

        stages["builder"].build.side_effect = build

        result = orchestrator.run()

        states = _states(result)
        assert states.pop(("windows-latest", "nightly-2023-04-16")) is JobState.BUILD_FAILED
        assert all(state is JobState.PUBLISHED for state in states.values())
        assert len(result.failures) == 1
        assert "link.exe" in result.failures[0].reason
        assert result.exit_code == 1
        assert stages["publisher"].publish.call_count == 5

    def test_toolchain_unavailable(self, orchestrator, stages):
        def ensure(version, **kwargs):
            if version == "nightly-2023-04-16":
                raise ToolchainUnavailableError("toolchain 'nightly-2023-04-16' is not available")

        stages["installer"].ensure.side_effect = ensure

        result = orchestrator.run()

        for r in result.results:
            if r.job.toolchain == "stable":
                assert r.state is JobState.PUBLISHED
            else:
                assert r.state is JobState.TOOLCHAIN_UNAVAILABLE
                assert r.history == [JobState.PLANNED, JobState.TOOLCHAIN_UNAVAILABLE]
        assert stages["builder"].build.call_count == 3

    def test_test_failure_skips_publish(self, orchestrator, stages):
        def run_tests(job):
            if job.toolchain == "stable":
                raise TestFailureError("Tests failed on toolchain stable")

        stages["tester"].run.side_effect = run_tests

        result = orchestrator.run()

        failed = [r for r in result.results if r.state is JobState.TEST_FAILED]
        assert {r.job.toolchain for r in failed} == {"stable"}
        assert len(failed) == 3
        published = [call.args[0].job.toolchain for call in stages["publisher"].publish.call_args_list]
        assert "stable" not in published

    def test_publish_failure(self, orchestrator, stages):
        stages["publisher"].publish.side_effect = PublishError("403 Forbidden")

        result = orchestrator.run()

        assert all(r.state is JobState.PUBLISH_FAILED for r in result.results)
        assert result.results[0].history[-2:] == [JobState.TESTED, JobState.PUBLISH_FAILED]
        assert result.results[0].location is None

    def test_unexpected_error_maps_to_stage_failure(self, orchestrator, stages):
        stages["builder"].build.side_effect = RuntimeError("boom")

        result = orchestrator.run_job(orchestrator.plan()[0])

        assert result.state is JobState.BUILD_FAILED
        assert result.reason == "Unexpected error: RuntimeError: boom"

    def test_abort_before_run(self, orchestrator, stages):
        orchestrator.abort()

        result = orchestrator.run()

        assert all(r.state is JobState.ABORTED for r in result.results)
        stages["installer"].ensure.assert_not_called()

    def test_abort_while_building(self, orchestrator, stages):
        stages["builder"].build.side_effect = PipelineAborted("Pipeline aborted while running: cargo build")

        result = orchestrator.run_job(orchestrator.plan()[0])

        assert result.state is JobState.ABORTED
        assert result.history == [JobState.PLANNED, JobState.BUILDING, JobState.ABORTED]
        stages["publisher"].publish.assert_not_called()

    def test_cancel_one_job(self, orchestrator, stages):
        jobs = orchestrator.plan()
        orchestrator.cancel(jobs[2].job_id)

        result = orchestrator.run(jobs)

        assert result.results[2].state is JobState.ABORTED
        assert "cancelled" in result.results[2].reason
        assert sum(r.state is JobState.PUBLISHED for r in result.results) == 5

    def test_cancel_while_building(self, orchestrator, stages, tmp_path):
        """Test cancelling a job inside its build command aborts only that job."""
        jobs = orchestrator.plan()
        target = jobs[1]

        def build(job):
            if job == target:
                orchestrator.tracker.run(
                    [sys.executable, "-c", "import time; time.sleep(30)"], job_id=job.job_id
                )
            return Artifact(path=tmp_path / job.job_id, job=job)

        stages["builder"].build.side_effect = build
        outcome = {}
        thread = threading.Thread(target=lambda: outcome.setdefault("result", orchestrator.run(jobs)))
        thread.start()
        deadline = time.time() + 10
        while target.job_id not in orchestrator.tracker.running_jobs() and time.time() < deadline:
            time.sleep(0.05)
        orchestrator.cancel(target.job_id)
        thread.join(timeout=10)

        result = outcome["result"]
        assert result.results[1].history == [JobState.PLANNED, JobState.BUILDING, JobState.ABORTED]
        assert "cancelled" in result.results[1].reason
        assert sum(r.state is JobState.PUBLISHED for r in result.results) == 5

    def test_empty_selection(self, orchestrator):
        result = orchestrator.run([])
        assert result.results == []

    def test_default_store_uses_artifact_dir(self, aarf_config, tmp_path):
        config = replace(aarf_config, artifact_dir="dist")
        orchestrator = PipelineOrchestrator(config, project_dir=tmp_path, work_dir=tmp_path / "work")
        assert orchestrator.publisher.store.root == tmp_path.resolve() / "dist"

    def test_default_store_in_work_dir(self, aarf_config, tmp_path):
        orchestrator = PipelineOrchestrator(aarf_config, project_dir=tmp_path, work_dir=tmp_path / "work")
        assert orchestrator.publisher.store.root == tmp_path / "work" / "artifacts"


class TestSelectJobs:
    """Test job selection."""

    def test_no_filters(self, orchestrator):
        jobs = orchestrator.plan()
        assert select_jobs(jobs) == jobs

    def test_os_and_toolchain_filters(self, orchestrator):
        jobs = select_jobs(orchestrator.plan(), oses=["macos-latest"], toolchains=["stable"])
        assert [job.job_id for job in jobs] == ["macos-latest-stable"]

    def test_host_only(self, orchestrator):
        with patch("crossmatrix.packages.host.platform.system", return_value="Windows"):
            jobs = select_jobs(orchestrator.plan(), host_only=True)
        assert {job.os for job in jobs} == {"windows-latest"}


def test_default_work_dir(tmp_path, monkeypatch):
    monkeypatch.delenv(WORK_DIR_ENV, raising=False)
    assert default_work_dir(tmp_path) == tmp_path / ".crossmatrix"

    monkeypatch.setenv(WORK_DIR_ENV, str(tmp_path / "elsewhere"))
    assert default_work_dir(tmp_path) == tmp_path / "elsewhere"
