"""
Build and test execution for crossmatrix.

This module provides:
- Build execution (cargo build per job descriptor)
- Test execution (cargo test once per toolchain)
"""

from .build_executor import Artifact, BuildExecutor
from .test_runner import TestRunner

__all__ = [
    "Artifact",
    "BuildExecutor",
    "TestRunner",
]
