"""Build Executor.

This module invokes cargo for one job descriptor and locates the produced
binary.

Design:
    - One cargo invocation per job: cargo +<toolchain> build <flags> --target <triple> --release --verbose
    - Each job gets its own CARGO_TARGET_DIR so parallel jobs share no state
    - Empty flags add nothing to the command line
    - Build output is written to a per-job log file
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..errors import BuildError
from ..matrix.planner import JobDescriptor
from ..process_tracker import CommandResult, ProcessTracker


@dataclass(frozen=True)
class Artifact:
    """A compiled binary and the job that produced it."""

    path: Path
    job: JobDescriptor

    @property
    def name(self) -> str:
        return self.job.artifact_name


def tail(text: str, lines: int = 20) -> str:
    """Last lines of command output, for error messages."""
    return "\n".join(text.strip().splitlines()[-lines:])


class BuildExecutor:
    """Builds the project for a job descriptor.

    This class handles:
    - Building the cargo command from the resolved job
    - Isolating each job in its own target directory
    - Checking the expected binary exists after a successful build
    """

    # Cargo's output directory for each built-in profile
    PROFILE_DIRS = {"release": "release", "dev": "debug", "debug": "debug"}

    def __init__(
        self,
        project_dir: Path,
        work_dir: Path,
        tracker: ProcessTracker,
        profile: str = "release",
        verbose: bool = True,
    ):
        """Initialize build executor.

        Args:
            project_dir: Cargo project directory
            work_dir: Root for per-job target directories and logs
            tracker: Process tracker used to run cargo
            profile: Cargo build profile
            verbose: Pass --verbose to cargo
        """
        self.project_dir = project_dir
        self.work_dir = work_dir
        self.tracker = tracker
        self.profile = profile
        self.verbose = verbose

    def job_dir(self, job: JobDescriptor) -> Path:
        return self.work_dir / job.job_id

    def target_dir(self, job: JobDescriptor) -> Path:
        return self.job_dir(job) / "target"

    def artifact_path(self, job: JobDescriptor) -> Path:
        """Where cargo writes the job's binary."""
        profile_dir = self.PROFILE_DIRS.get(self.profile, self.profile)
        return self.target_dir(job) / job.target / profile_dir / job.target_name

    def command(self, job: JobDescriptor) -> List[str]:
        """Build the cargo command for a job.

        Example:
            ['cargo', '+stable', 'build', '--target', 'x86_64-unknown-linux-gnu',
             '--release', '--verbose']
        """
        cmd = ["cargo", f"+{job.toolchain}", "build"]
        cmd.extend(job.flags)
        cmd.extend(["--target", job.target])
        if self.profile == "release":
            cmd.append("--release")
        else:
            cmd.extend(["--profile", self.profile])
        if self.verbose:
            cmd.append("--verbose")
        return cmd

    def _write_log(self, job: JobDescriptor, name: str, result: CommandResult) -> Path:
        log_path = self.job_dir(job) / name
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "w", encoding="utf-8") as f:
            f.write(f"$ {' '.join(result.args)}\n")
            f.write(result.stdout)
            f.write(result.stderr)
            f.write(f"\nexit status: {result.returncode}\n")
        return log_path

    def build(self, job: JobDescriptor) -> Artifact:
        """Build one job.

        Args:
            job: Resolved job descriptor

        Returns:
            Artifact for the produced binary

        Raises:
            BuildError: If cargo cannot be started, exits non-zero, or
                produces no binary
        """
        cmd = self.command(job)
        env = job.env_map()
        env["CARGO_TARGET_DIR"] = str(self.target_dir(job))

        logging.info(f"[{job.job_id}] Building {job.target_name} for {job.target}")
        try:
            result = self.tracker.run(cmd, job_id=job.job_id, cwd=self.project_dir, env=env)
        except OSError as e:
            raise BuildError(f"Failed to run cargo: {e}") from e

        log_path = self._write_log(job, "build.log", result)
        if not result.ok:
            raise BuildError(
                f"Build failed with exit status {result.returncode} (log: {log_path})\n"
                + tail(result.stderr)
            )

        binary = self.artifact_path(job)
        if not binary.exists():
            raise BuildError(f"Build succeeded but {binary} was not produced")

        logging.info(f"[{job.job_id}] Built {binary}")
        return Artifact(path=binary, job=job)
