"""Toolchain management for crossmatrix.

This module handles locating, bootstrapping and installing the toolchains
the build matrix requests.
"""

from .downloader import ChecksumError, Downloader, DownloadError
from .host import HostDetector
from .toolchain import ToolchainInstaller

__all__ = [
    "Downloader",
    "DownloadError",
    "ChecksumError",
    "HostDetector",
    "ToolchainInstaller",
]
