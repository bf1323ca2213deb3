"""
Command-line interface for crossmatrix.

This module provides the `crossmatrix` CLI tool for planning and running a
build matrix.
"""

import argparse
import json
import sys
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import List, Optional

from . import __version__
from .cli_utils import (
    BannerFormatter,
    ErrorFormatter,
    PathValidator,
    SummaryFormatter,
    setup_logging,
)
from .config import DEFAULT_CONFIG_NAME, load_config
from .deploy import ArtifactStore, HttpArtifactStore, LocalArtifactStore
from .errors import PipelineConfigError, PlanningError
from .matrix import JobPlanner
from .pipeline import PipelineOrchestrator, select_jobs
from .triggers import TriggerEvent, should_run


@dataclass
class PlanArgs:
    """Arguments for the plan command."""

    project_dir: Path
    config: Optional[Path] = None
    json: bool = False


@dataclass
class RunArgs:
    """Arguments for the run command."""

    project_dir: Path
    config: Optional[Path] = None
    oses: List[str] = field(default_factory=list)
    toolchains: List[str] = field(default_factory=list)
    host_only: bool = False
    jobs: Optional[int] = None
    event: Optional[str] = None
    event_path: Optional[Path] = None
    branch: Optional[str] = None
    store_url: Optional[str] = None
    artifact_dir: Optional[Path] = None
    summary_file: Optional[Path] = None
    log_file: Optional[Path] = None
    verbose: bool = False


@dataclass
class InitArgs:
    """Arguments for the init command."""

    project_dir: Path
    force: bool = False


def _load_config_or_exit(project_dir: Path, config_path: Optional[Path]):
    try:
        return load_config(project_dir, config_path)
    except PipelineConfigError as e:
        ErrorFormatter.print_error("Configuration error", str(e))
        sys.exit(2)


def plan_command(args: PlanArgs) -> None:
    """Expand and plan the matrix without running anything.

    Examples:
        crossmatrix plan                # Plan ./crossmatrix.ini
        crossmatrix plan --json         # Machine-readable job list
    """
    config = _load_config_or_exit(args.project_dir, args.config)
    try:
        jobs = JobPlanner(config).plan()
    except PlanningError as e:
        ErrorFormatter.print_error("Planning failed", str(e))
        sys.exit(2)

    if args.json:
        print(json.dumps([job.to_dict() for job in jobs], indent=2))
    else:
        print(SummaryFormatter.format_plan(jobs))
        print()
        print(f"{len(jobs)} jobs planned for {config.name}")
    sys.exit(0)


def _create_store(args: RunArgs) -> Optional[ArtifactStore]:
    if args.store_url:
        return HttpArtifactStore(args.store_url)
    if args.artifact_dir:
        return LocalArtifactStore(args.artifact_dir)
    return None


def run_command(args: RunArgs) -> None:
    """Run the build-test-publish pipeline.

    Examples:
        crossmatrix run                          # Run every job
        crossmatrix run --host-only              # Only jobs this machine can run
        crossmatrix run --os ubuntu-latest       # One OS, every toolchain
        crossmatrix run --event push --event-path $GITHUB_EVENT_PATH
    """
    print(f"crossmatrix v{__version__}")
    print()
    setup_logging(args.verbose, args.log_file)

    config = _load_config_or_exit(args.project_dir, args.config)

    if args.event:
        try:
            if args.event_path:
                event = TriggerEvent.from_file(args.event, args.event_path)
            else:
                event = TriggerEvent(name=args.event, branch=args.branch)
        except PipelineConfigError as e:
            ErrorFormatter.print_error("Invalid event", str(e))
            sys.exit(2)
        if not should_run(config.trigger, event):
            print(f"Skipping: {event.name} on {event.branch} does not trigger {config.name}")
            sys.exit(0)

    orchestrator = PipelineOrchestrator(
        config,
        project_dir=args.project_dir,
        store=_create_store(args),
        max_workers=args.jobs,
        verbose=args.verbose,
    )

    try:
        jobs = orchestrator.plan()
    except PlanningError as e:
        ErrorFormatter.print_error("Planning failed", str(e))
        sys.exit(2)

    selected = select_jobs(jobs, args.oses, args.toolchains, args.host_only)
    if not selected:
        ErrorFormatter.print_warning("No jobs match the selection")
        sys.exit(1)

    try:
        result = orchestrator.run(selected)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
        return

    print()
    print(BannerFormatter.format_banner(f"{config.name}: {len(selected)} jobs"))
    print(SummaryFormatter.format_summary(result, color=sys.stdout.isatty()))

    if args.summary_file:
        args.summary_file.parent.mkdir(parents=True, exist_ok=True)
        args.summary_file.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")

    if result.success:
        ErrorFormatter.print_success("All jobs published")
    else:
        ErrorFormatter.print_error("Pipeline failed", f"{len(result.failures)} jobs did not publish")
    sys.exit(result.exit_code)


def init_command(args: InitArgs) -> None:
    """Write a starter crossmatrix.ini.

    Examples:
        crossmatrix init              # Create ./crossmatrix.ini
        crossmatrix init --force      # Overwrite an existing file
    """
    dest = args.project_dir / DEFAULT_CONFIG_NAME
    if dest.exists() and not args.force:
        ErrorFormatter.print_error("Config exists", f"{dest} already exists (use --force to overwrite)")
        sys.exit(1)

    template = resources.files("crossmatrix").joinpath("assets/crossmatrix.ini").read_text(encoding="utf-8")
    dest.write_text(template, encoding="utf-8")
    ErrorFormatter.print_success(f"Wrote {dest}")
    sys.exit(0)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help=f"Pipeline configuration (default: <project_dir>/{DEFAULT_CONFIG_NAME})",
    )


def main() -> None:
    """crossmatrix - cross-platform build matrix runner."""
    parser = argparse.ArgumentParser(
        prog="crossmatrix",
        description="crossmatrix - build, test and publish a binary across an OS/toolchain matrix",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"crossmatrix {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Plan command
    plan_parser = subparsers.add_parser("plan", help="Expand and validate the matrix")
    _add_common_arguments(plan_parser)
    plan_parser.add_argument("--json", action="store_true", help="Print jobs as JSON")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the build-test-publish pipeline")
    _add_common_arguments(run_parser)
    run_parser.add_argument(
        "--os", dest="oses", action="append", default=[], help="Only run jobs for this OS (repeatable)"
    )
    run_parser.add_argument(
        "--toolchain",
        dest="toolchains",
        action="append",
        default=[],
        help="Only run jobs for this toolchain (repeatable)",
    )
    run_parser.add_argument(
        "--host-only", action="store_true", help="Only run jobs whose OS matches this machine"
    )
    run_parser.add_argument("-j", "--jobs", type=int, default=None, help="Parallel jobs (default: all)")
    run_parser.add_argument(
        "--event", default=None, choices=["push", "pull_request"], help="Triggering event name"
    )
    run_parser.add_argument("--event-path", type=Path, default=None, help="Event payload JSON file")
    run_parser.add_argument("--branch", default=None, help="Target branch when no payload is given")
    run_parser.add_argument("--store-url", default=None, help="Upload artifacts with HTTP PUT to this URL")
    run_parser.add_argument(
        "--artifact-dir", type=Path, default=None, help="Store artifacts in this directory"
    )
    run_parser.add_argument("--summary-file", type=Path, default=None, help="Write a JSON run summary")
    run_parser.add_argument("--log-file", type=Path, default=None, help="Also log to this file")
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")

    # Init command
    init_parser = subparsers.add_parser("init", help="Write a starter crossmatrix.ini")
    init_parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing config")

    parsed_args = parser.parse_args()

    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    PathValidator.validate_project_dir(parsed_args.project_dir)

    try:
        if parsed_args.command == "plan":
            plan_command(
                PlanArgs(
                    project_dir=parsed_args.project_dir,
                    config=parsed_args.config,
                    json=parsed_args.json,
                )
            )
        elif parsed_args.command == "run":
            run_command(
                RunArgs(
                    project_dir=parsed_args.project_dir,
                    config=parsed_args.config,
                    oses=parsed_args.oses,
                    toolchains=parsed_args.toolchains,
                    host_only=parsed_args.host_only,
                    jobs=parsed_args.jobs,
                    event=parsed_args.event,
                    event_path=parsed_args.event_path,
                    branch=parsed_args.branch,
                    store_url=parsed_args.store_url,
                    artifact_dir=parsed_args.artifact_dir,
                    summary_file=parsed_args.summary_file,
                    log_file=parsed_args.log_file,
                    verbose=parsed_args.verbose,
                )
            )
        elif parsed_args.command == "init":
            init_command(InitArgs(project_dir=parsed_args.project_dir, force=parsed_args.force))
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, getattr(parsed_args, "verbose", False))


if __name__ == "__main__":
    main()
