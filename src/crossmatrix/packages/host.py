"""Host Platform Detection.

Maps runner labels from the matrix `os` axis to host families, and detects the
family and rustup host triple of the machine running the pipeline.

Supported families:
    - linux: ubuntu-*, linux, debian-*, fedora-*
    - windows: windows-*, win*
    - macos: macos-*, darwin, osx
"""

import platform
from typing import Optional

from ..errors import ToolchainUnavailableError

_FAMILY_PREFIXES = {
    "linux": ("ubuntu", "linux", "debian", "fedora"),
    "windows": ("windows", "win"),
    "macos": ("macos", "darwin", "osx"),
}


class HostDetector:
    """Detects the current host and classifies runner labels."""

    @staticmethod
    def family_of(runner_label: str) -> Optional[str]:
        """Get the host family of a runner label.

        Example:
            >>> HostDetector.family_of("ubuntu-latest")
            'linux'
            >>> HostDetector.family_of("self-hosted")
        """
        label = runner_label.lower()
        for family, prefixes in _FAMILY_PREFIXES.items():
            if label.startswith(prefixes):
                return family
        return None

    @staticmethod
    def current_family() -> str:
        """Get the host family of the current machine."""
        system = platform.system().lower()
        if system == "windows":
            return "windows"
        elif system == "darwin":
            return "macos"
        return "linux"

    @classmethod
    def matches_host(cls, runner_label: str) -> bool:
        """Whether a job for this runner label can run on the current machine."""
        return cls.family_of(runner_label) == cls.current_family()

    @staticmethod
    def rustup_host_triple() -> str:
        """Get the rustup-init host triple for the current machine.

        Raises:
            ToolchainUnavailableError: If the platform has no rustup-init build
        """
        system = platform.system().lower()
        machine = platform.machine().lower()

        if machine in ("x86_64", "amd64"):
            arch = "x86_64"
        elif machine in ("aarch64", "arm64"):
            arch = "aarch64"
        elif machine in ("i386", "i686"):
            arch = "i686"
        else:
            raise ToolchainUnavailableError(f"Unsupported host architecture: {machine}")

        if system == "linux":
            return f"{arch}-unknown-linux-gnu"
        elif system == "darwin":
            return f"{arch}-apple-darwin"
        elif system == "windows":
            return f"{arch}-pc-windows-msvc"
        raise ToolchainUnavailableError(f"Unsupported host platform: {system}")
