"""Toolchain installation via rustup.

This module selects and installs the Rust toolchains the matrix asks for.
Installations are shared by every job in a run: each (version, components,
targets) request is installed at most once, and a failed installation is
remembered so later jobs fail fast instead of retrying.
"""

import logging
import os
import shutil
import stat
import threading
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from ..errors import ToolchainUnavailableError
from ..process_tracker import ProcessTracker
from .downloader import ChecksumError, Downloader, DownloadError
from .host import HostDetector

_InstallKey = Tuple[str, Tuple[str, ...], Tuple[str, ...]]


class ToolchainInstaller:
    """Installs rustup toolchains on demand.

    Example usage:
        installer = ToolchainInstaller(tracker, cache_dir=Path(".crossmatrix/cache"))
        installer.ensure("nightly-2023-04-16", components=["rust-src"],
                         targets=["x86_64-unknown-linux-gnu"], job_id="ubuntu-nightly")
    """

    RUSTUP_INIT_URL = "https://static.rust-lang.org/rustup/dist/{triple}/rustup-init{ext}"

    def __init__(
        self,
        tracker: ProcessTracker,
        cache_dir: Path,
        downloader: Optional[Downloader] = None,
        show_progress: bool = True,
    ):
        """Initialize toolchain installer.

        Args:
            tracker: Process tracker used to run rustup
            cache_dir: Directory for the bootstrapped rustup-init binary
            downloader: Downloader for rustup-init (created lazily if None)
            show_progress: Whether to show download progress
        """
        self.tracker = tracker
        self.cache_dir = cache_dir
        self.downloader = downloader
        self.show_progress = show_progress
        self._rustup: Optional[str] = None
        self._rustup_error: Optional[str] = None
        self._rustup_lock = threading.Lock()
        self._locks_lock = threading.Lock()
        self._version_locks: Dict[str, threading.Lock] = {}
        self._results: Dict[_InstallKey, Optional[str]] = {}

    def _get_version_lock(self, version: str) -> threading.Lock:
        with self._locks_lock:
            if version not in self._version_locks:
                self._version_locks[version] = threading.Lock()
            return self._version_locks[version]

    @staticmethod
    def find_rustup() -> Optional[str]:
        """Locate rustup on PATH or in the default cargo home."""
        found = shutil.which("rustup")
        if found:
            return found
        cargo_home = Path(os.environ.get("CARGO_HOME", Path.home() / ".cargo"))
        for name in ("rustup", "rustup.exe"):
            candidate = cargo_home / "bin" / name
            if candidate.exists():
                return str(candidate)
        return None

    def rustup(self, job_id: str) -> str:
        """Get the rustup executable, bootstrapping it if necessary.

        A failed bootstrap is attempted once per run; later callers get the
        same error.

        Raises:
            ToolchainUnavailableError: If rustup cannot be found or installed
        """
        with self._rustup_lock:
            if self._rustup_error is not None:
                raise ToolchainUnavailableError(self._rustup_error)
            if self._rustup is None:
                try:
                    self._rustup = self.find_rustup() or self._bootstrap_rustup(job_id)
                except ToolchainUnavailableError as e:
                    self._rustup_error = str(e)
                    raise
            return self._rustup

    def _bootstrap_rustup(self, job_id: str) -> str:
        triple = HostDetector.rustup_host_triple()
        ext = ".exe" if "windows" in triple else ""
        url = self.RUSTUP_INIT_URL.format(triple=triple, ext=ext)
        dest = self.cache_dir / f"rustup-init{ext}"

        logging.info(f"rustup not found, downloading {url}")
        downloader = self.downloader or Downloader()
        try:
            checksum_text = downloader.fetch_text(url + ".sha256")
            checksum = checksum_text.split()[0] if checksum_text else None
            downloader.download(url, dest, checksum=checksum, show_progress=self.show_progress)
        except (DownloadError, ChecksumError) as e:
            raise ToolchainUnavailableError(f"Failed to bootstrap rustup: {e}") from e

        dest.chmod(dest.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        result = self.tracker.run(
            [str(dest), "-y", "--no-modify-path", "--default-toolchain", "none", "--profile", "minimal"],
            job_id=job_id,
        )
        if not result.ok:
            raise ToolchainUnavailableError(f"rustup-init failed: {result.stderr.strip()}")

        rustup = self.find_rustup()
        if rustup is None:
            raise ToolchainUnavailableError("rustup-init completed but rustup was not found")
        return rustup

    def ensure(
        self,
        version: str,
        job_id: str,
        components: Sequence[str] = (),
        targets: Sequence[str] = (),
    ) -> None:
        """Install a toolchain with the requested components and targets.

        Args:
            version: Toolchain identifier (e.g. "stable", "nightly-2023-04-16")
            job_id: Job requesting the toolchain
            components: Optional components (e.g. "rust-src")
            targets: Target triples whose standard library is needed

        Raises:
            ToolchainUnavailableError: If installation fails (now or earlier in this run)
        """
        key: _InstallKey = (version, tuple(sorted(components)), tuple(sorted(targets)))
        with self._get_version_lock(version):
            if key in self._results:
                error = self._results[key]
                if error is not None:
                    raise ToolchainUnavailableError(error)
                return

            try:
                self._install(version, job_id, key[1], key[2])
            except ToolchainUnavailableError as e:
                self._results[key] = str(e)
                raise
            self._results[key] = None

    def _install(
        self, version: str, job_id: str, components: Sequence[str], targets: Sequence[str]
    ) -> None:
        cmd = [self.rustup(job_id), "toolchain", "install", version, "--profile", "minimal", "--no-self-update"]
        for component in components:
            cmd.extend(["--component", component])
        for target in targets:
            cmd.extend(["--target", target])

        logging.info(f"[{job_id}] Installing toolchain {version}")
        try:
            result = self.tracker.run(cmd, job_id=job_id)
        except OSError as e:
            raise ToolchainUnavailableError(f"Failed to run rustup: {e}") from e

        if not result.ok:
            detail = result.stderr.strip() or result.stdout.strip()
            raise ToolchainUnavailableError(
                f"Failed to install toolchain {version} (exit {result.returncode}): {detail}"
            )
        logging.info(f"[{job_id}] Toolchain {version} ready")
