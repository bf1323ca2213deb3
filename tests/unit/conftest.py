"""Shared fixtures for crossmatrix unit tests."""

import pytest

from crossmatrix.config import Axis, MatrixConfig, OverrideRecord

NIGHTLY = "nightly-2023-04-16"
NIGHTLY_FLAGS = "-Z build-std=std,panic_abort -Z build-std-features=panic_immediate_abort"


def aarf_overrides():
    """Override records of the aarf pipeline."""
    return (
        OverrideRecord.create({"toolchain": NIGHTLY}, {"flags": NIGHTLY_FLAGS}),
        OverrideRecord.create({"toolchain": "stable"}, {"flags": ""}),
        OverrideRecord.create(
            {"os": "ubuntu-latest"},
            {"target": "x86_64-unknown-linux-gnu", "target_name": "aarf"},
        ),
        OverrideRecord.create(
            {"os": "windows-latest"},
            {"target": "x86_64-pc-windows-msvc", "target_name": "aarf.exe"},
        ),
        OverrideRecord.create(
            {"os": "macos-latest"},
            {"target": "x86_64-apple-darwin", "target_name": "aarf"},
        ),
    )


@pytest.fixture
def aarf_config():
    """MatrixConfig equivalent to the aarf pipeline."""
    return MatrixConfig(
        name="aarf",
        axes=(
            Axis("os", ("ubuntu-latest", "windows-latest", "macos-latest")),
            Axis("toolchain", (NIGHTLY, "stable")),
        ),
        overrides=aarf_overrides(),
        env=(("CARGO_TERM_COLOR", "always"), ("RUSTFLAGS", "")),
        components=("rust-src",),
    )


@pytest.fixture
def simple_config():
    """Matrix with plain linux/windows/macos x nightly/stable values."""
    return MatrixConfig(
        name="aarf",
        axes=(
            Axis("os", ("linux", "windows", "macos")),
            Axis("toolchain", ("nightly", "stable")),
        ),
        overrides=(
            OverrideRecord.create({"toolchain": "nightly"}, {"flags": "-Z build-std"}),
            OverrideRecord.create({"os": "linux"}, {"target": "x86_64-unknown-linux-gnu", "target_name": "aarf"}),
            OverrideRecord.create({"os": "windows"}, {"target": "x86_64-pc-windows-msvc", "target_name": "aarf.exe"}),
            OverrideRecord.create({"os": "macos"}, {"target": "x86_64-apple-darwin", "target_name": "aarf"}),
        ),
    )
