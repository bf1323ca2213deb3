"""
Process Tracking and Global Abort

Toolchain commands (rustup, cargo) spawn whole process trees: cargo starts
rustc, build scripts and linkers. This module runs those commands, keeps a
registry of the ones in flight per job, and on a global abort kills every
tracked tree so no orphaned compiler keeps running after the pipeline stops.

Key features:
- Run commands with captured output, registered per job
- Kill one job's process tree without touching siblings
- Global abort: refuse new commands and kill every tracked tree
- Thread-safe; one tracker is shared by all worker threads
"""

import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import psutil

from .errors import PipelineAborted


@dataclass
class CommandResult:
    """Outcome of one tracked command."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class _TrackedProcess:
    job_id: str
    process: subprocess.Popen
    args: List[str] = field(default_factory=list)


class ProcessTracker:
    """Thread-safe registry of running toolchain processes.

    Usage:
        tracker = ProcessTracker()
        result = tracker.run(["cargo", "build"], job_id="ubuntu-latest-stable")
        ...
        tracker.abort()  # from a signal handler or another thread
    """

    KILL_TIMEOUT = 3.0

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self._running: Dict[int, _TrackedProcess] = {}
        self._aborted = threading.Event()
        self._cancelled: Set[str] = set()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def check_aborted(self) -> None:
        """Raise PipelineAborted if a global abort has been requested."""
        if self._aborted.is_set():
            raise PipelineAborted("Pipeline aborted")

    def check_cancelled(self, job_id: str) -> None:
        """Raise PipelineAborted if the global abort or kill_job() stopped this job."""
        self.check_aborted()
        with self.lock:
            if job_id in self._cancelled:
                raise PipelineAborted(f"Job {job_id} cancelled")

    def run(
        self,
        args: Sequence[str],
        job_id: str,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """Run a command to completion while tracking its process tree.

        Args:
            args: Command and arguments
            job_id: Job the command belongs to
            cwd: Working directory
            env: Variables merged over the current process environment

        Returns:
            CommandResult with exit status and captured output

        Raises:
            PipelineAborted: If the pipeline is aborted, or the job killed, before
                or while running
            OSError: If the command cannot be started
        """
        self.check_cancelled(job_id)

        full_env = dict(os.environ)
        if env:
            full_env.update(env)

        cmd = [str(arg) for arg in args]
        logging.debug(f"[{job_id}] $ {' '.join(cmd)}")
        process = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            env=full_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )

        with self.lock:
            self._running[process.pid] = _TrackedProcess(job_id=job_id, process=process, args=cmd)
            # kill_job() may have run between the check above and registration
            killed_early = job_id in self._cancelled or self._aborted.is_set()
        if killed_early:
            self._kill_tree(process.pid)

        try:
            stdout, stderr = process.communicate()
        finally:
            with self.lock:
                self._running.pop(process.pid, None)

        if self._aborted.is_set():
            raise PipelineAborted(f"Pipeline aborted while running: {' '.join(cmd)}")
        with self.lock:
            cancelled = job_id in self._cancelled
        if cancelled:
            raise PipelineAborted(f"Job {job_id} cancelled while running: {' '.join(cmd)}")

        return CommandResult(args=cmd, returncode=process.returncode, stdout=stdout or "", stderr=stderr or "")

    def running_jobs(self) -> List[str]:
        with self.lock:
            return sorted({tracked.job_id for tracked in self._running.values()})

    def kill_job(self, job_id: str) -> int:
        """Kill the process trees of one job and refuse its later commands.

        The job's interrupted command raises PipelineAborted instead of
        returning the kill's exit status. Other jobs are not affected.

        Returns:
            Number of processes killed
        """
        with self.lock:
            self._cancelled.add(job_id)
            roots = [t.process.pid for t in self._running.values() if t.job_id == job_id]
        return sum(self._kill_tree(pid) for pid in roots)

    def abort(self) -> int:
        """Abort the pipeline: refuse new commands and kill every tracked tree.

        Returns:
            Number of processes killed
        """
        self._aborted.set()
        with self.lock:
            roots = list(self._running)
        killed = sum(self._kill_tree(pid) for pid in roots)
        logging.warning(f"Pipeline aborted, killed {killed} processes")
        return killed

    def _kill_tree(self, root_pid: int) -> int:
        """Kill a process and all of its descendants."""
        try:
            root_proc = psutil.Process(root_pid)
        except psutil.NoSuchProcess:
            return 0

        try:
            processes_to_kill: List[psutil.Process] = root_proc.children(recursive=True)
        except psutil.NoSuchProcess:
            processes_to_kill = []
        processes_to_kill.append(root_proc)

        for proc in processes_to_kill:
            try:
                proc.terminate()
                logging.debug(f"Terminated process {proc.pid}")
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                logging.warning(f"Failed to terminate process {proc.pid}: {e}")

        _gone, alive = psutil.wait_procs(processes_to_kill, timeout=self.KILL_TIMEOUT)
        for proc in alive:
            try:
                proc.kill()
                logging.warning(f"Force killed stubborn process {proc.pid}")
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                logging.warning(f"Failed to force kill process {proc.pid}: {e}")

        return len(processes_to_kill)
