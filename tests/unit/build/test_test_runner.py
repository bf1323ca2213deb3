"""
Unit tests for TestRunner.
"""

import sys
import threading
import time
from unittest.mock import Mock, patch

import pytest

from crossmatrix.build import TestRunner
from crossmatrix.errors import PipelineAborted, TestFailureError
from crossmatrix.matrix import JobPlanner
from crossmatrix.process_tracker import CommandResult, ProcessTracker


@pytest.fixture
def jobs(aarf_config):
    return JobPlanner(aarf_config).plan()


@pytest.fixture
def tracker():
    tracker = Mock()
    tracker.run.return_value = CommandResult(args=["cargo"], returncode=0, stdout="test result: ok\n")
    return tracker


@pytest.fixture
def runner(tmp_path, tracker):
    return TestRunner(project_dir=tmp_path, work_dir=tmp_path / "work", tracker=tracker)


class TestTestRunner:
    """Test per-toolchain test execution."""

    def test_command(self, runner):
        assert runner.command("stable") == ["cargo", "+stable", "test", "--verbose"]

    def test_passing_suite(self, runner, tracker, jobs):
        runner.run(jobs[0])

        tracker.run.assert_called_once()
        assert tracker.run.call_args.args[0] == ["cargo", "+nightly-2023-04-16", "test", "--verbose"]
        log = runner.test_dir("nightly-2023-04-16") / "test.log"
        assert "test result: ok" in log.read_text(encoding="utf-8")

    def test_suite_runs_once_per_toolchain(self, runner, tracker, jobs):
        """Test every job on a toolchain reuses the first result."""
        for job in jobs:
            runner.run(job)

        toolchains = [call.args[0][1] for call in tracker.run.call_args_list]
        assert sorted(toolchains) == ["+nightly-2023-04-16", "+stable"]

    def test_failure_is_shared(self, runner, tracker, jobs):
        """Test a failing suite fails every job on that toolchain."""
        tracker.run.return_value = CommandResult(
            args=["cargo"], returncode=101, stdout="test tests::parse ... FAILED\n"
        )
        stable_jobs = [job for job in jobs if job.toolchain == "stable"]

        for job in stable_jobs:
            with pytest.raises(TestFailureError, match="exit status 101"):
                runner.run(job)
        assert tracker.run.call_count == 1

    def test_cargo_missing(self, runner, tracker, jobs):
        tracker.run.side_effect = FileNotFoundError("cargo")
        with pytest.raises(TestFailureError, match="Failed to run cargo test"):
            runner.run(jobs[0])

    def test_concurrent_jobs_share_one_run(self, runner, tracker, jobs):
        """Test jobs racing on one toolchain still run the suite once."""
        started = threading.Event()
        release = threading.Event()

        def slow_run(*args, **kwargs):
            started.set()
            release.wait(timeout=5)
            return CommandResult(args=["cargo"], returncode=0)

        tracker.run.side_effect = slow_run
        stable_jobs = [job for job in jobs if job.toolchain == "stable"]
        threads = [threading.Thread(target=runner.run, args=(job,)) for job in stable_jobs]
        for thread in threads:
            thread.start()
        started.wait(timeout=5)
        release.set()
        for thread in threads:
            thread.join(timeout=5)

        assert tracker.run.call_count == 1

    def test_cancelled_run_is_not_shared(self, tmp_path, jobs):
        """Test cancelling the job running a toolchain's suite leaves siblings to rerun it."""
        tracker = ProcessTracker()
        runner = TestRunner(project_dir=tmp_path, work_dir=tmp_path / "work", tracker=tracker)
        first, second = [job for job in jobs if job.toolchain == "stable"][:2]
        outcomes = {}

        def run(job):
            try:
                runner.run(job)
                outcomes[job.job_id] = "passed"
            except (PipelineAborted, TestFailureError) as e:
                outcomes[job.job_id] = type(e).__name__

        commands = [
            [sys.executable, "-c", "import time; time.sleep(30)"],
            [sys.executable, "-c", "print('test result: ok')"],
        ]
        with patch.object(runner, "command", side_effect=commands) as command:
            first_thread = threading.Thread(target=run, args=(first,))
            first_thread.start()
            deadline = time.time() + 10
            while not tracker.running_jobs() and time.time() < deadline:
                time.sleep(0.05)
            assert tracker.running_jobs() == [first.job_id]

            second_thread = threading.Thread(target=run, args=(second,))
            second_thread.start()
            tracker.kill_job(first.job_id)
            first_thread.join(timeout=10)
            second_thread.join(timeout=10)

        assert outcomes == {first.job_id: "PipelineAborted", second.job_id: "passed"}
        assert command.call_count == 2

    def test_test_dir_is_sanitized(self, runner):
        assert runner.test_dir("1.70.0/x86").name == "1.70.0_x86"
