"""CLI utility functions for crossmatrix.

This module provides common utilities used across CLI commands including:
- Logging setup
- Error handling and formatting
- Banner and run summary formatting
- Project path validation
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from .matrix.planner import JobDescriptor
from .pipeline.state import JobState, PipelineResult

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Setup logging for a pipeline run.

    Args:
        verbose: Log DEBUG messages (including every command run) to the console
        log_file: Optional file receiving a rotating copy of the log
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=3)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Planning failed")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        print()
        print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print()
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_file_not_found(error: FileNotFoundError) -> None:
        ErrorFormatter.print_error("Error: File not found", str(error))
        sys.exit(1)

    @staticmethod
    def handle_permission_error(error: PermissionError) -> None:
        ErrorFormatter.print_error("Error: Permission denied", str(error))
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Pipeline interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


class BannerFormatter:
    """Formats banner messages with borders."""

    DEFAULT_WIDTH = 80
    DEFAULT_BORDER_CHAR = "="

    @staticmethod
    def format_banner(
        message: str,
        width: int = DEFAULT_WIDTH,
        border_char: str = DEFAULT_BORDER_CHAR,
        center: bool = True,
    ) -> str:
        """Format a (possibly multi-line) message between two border lines."""
        border = border_char * width
        formatted_lines = [border]
        for line in message.split("\n"):
            if center:
                formatted_lines.append(" " * ((width - len(line)) // 2) + line)
            else:
                formatted_lines.append("  " + line)
        formatted_lines.append(border)
        return "\n".join(formatted_lines)


class SummaryFormatter:
    """Formats plans and run summaries, one line per job."""

    STATE_COLORS = {
        JobState.PUBLISHED: ErrorFormatter.GREEN,
        JobState.PUBLISH_FAILED: ErrorFormatter.YELLOW,
        JobState.ABORTED: ErrorFormatter.YELLOW,
    }

    @staticmethod
    def _label_width(jobs: List[JobDescriptor]) -> int:
        return max((len(job.label) for job in jobs), default=0) + 2

    @staticmethod
    def format_plan(jobs: List[JobDescriptor]) -> str:
        """Format planned jobs as aligned lines.

        Example line:
            (ubuntu-latest, stable)  x86_64-unknown-linux-gnu  aarf      (no flags)
        """
        width = SummaryFormatter._label_width(jobs)
        lines = []
        for job in jobs:
            flags = " ".join(job.flags) if job.flags else "(no flags)"
            lines.append(f"{job.label:<{width}}{job.target:<27}{job.target_name:<10}{flags}")
        return "\n".join(lines)

    @staticmethod
    def format_summary(result: PipelineResult, color: bool = True) -> str:
        """Format a run summary listing every job and its terminal state."""
        width = SummaryFormatter._label_width([r.job for r in result.results])
        lines = []
        for job_result in result.results:
            job = job_result.job
            state = job_result.state.value
            if color:
                code = SummaryFormatter.STATE_COLORS.get(job_result.state, ErrorFormatter.RED)
                state = f"{code}{state}{ErrorFormatter.RESET}"
            line = f"{job.label:<{width}}{state}"
            if job_result.state is JobState.PUBLISHED and job_result.location:
                line += f"  -> {job_result.location}"
            lines.append(line)

        failures = result.failures
        if failures:
            lines.append("")
            lines.append(f"{len(failures)} of {len(result.results)} jobs failed:")
            for job_result in failures:
                reason = (job_result.reason or "").strip().splitlines()
                first_line = reason[0] if reason else ""
                lines.append(f"  {job_result.job.label} {job_result.state.value}: {first_line}")
        return "\n".join(lines)


class PathValidator:
    """Validates project paths and directories."""

    @staticmethod
    def validate_project_dir(project_dir: Path) -> None:
        """Validate that project directory exists and is a directory.

        Raises:
            SystemExit: If path doesn't exist or isn't a directory
        """
        if not project_dir.exists():
            print(f"{ErrorFormatter.RED}✗ Error: Path does not exist: {project_dir}{ErrorFormatter.RESET}")
            sys.exit(2)
        if not project_dir.is_dir():
            print(f"{ErrorFormatter.RED}✗ Error: Path is not a directory: {project_dir}{ErrorFormatter.RESET}")
            sys.exit(2)
