"""
Immutable matrix configuration.

A MatrixConfig is loaded once per run (see ini_parser.PipelineConfig) and
passed explicitly to the expander and the planner. Every container in it is a
tuple so a running pipeline cannot mutate it.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

# Fields an override record may supply besides "env.<NAME>" keys
KNOWN_FIELDS = ("flags", "target", "target_name")
ENV_PREFIX = "env."

OS_AXIS = "os"
TOOLCHAIN_AXIS = "toolchain"


@dataclass(frozen=True)
class Axis:
    """A named dimension of variation with ordered discrete values."""

    name: str
    values: Tuple[str, ...]


@dataclass(frozen=True)
class OverrideRecord:
    """
    Explicit override rule.

    `match` names the axis value(s) the record applies to, `fields` the
    configuration it supplies. Both are stored as tuples of pairs to keep the
    record hashable and its ordering stable.

    Example:
        OverrideRecord(
            match=(("os", "windows-latest"),),
            fields=(("target", "x86_64-pc-windows-msvc"), ("target_name", "aarf.exe")),
        )
    """

    match: Tuple[Tuple[str, str], ...]
    fields: Tuple[Tuple[str, str], ...]

    @classmethod
    def create(cls, match: Mapping[str, str], fields: Mapping[str, str]) -> "OverrideRecord":
        """Build a record from plain mappings, preserving insertion order."""
        return cls(match=tuple(match.items()), fields=tuple(fields.items()))

    @property
    def label(self) -> str:
        """Section-style label, e.g. 'override:os=windows-latest'."""
        return "override:" + ",".join(f"{axis}={value}" for axis, value in self.match)

    def matches(self, values: Mapping[str, str]) -> bool:
        return all(values.get(axis) == value for axis, value in self.match)

    def field_map(self) -> Dict[str, str]:
        return dict(self.fields)


@dataclass(frozen=True)
class TriggerConfig:
    """Which events and branches start the pipeline."""

    events: Tuple[str, ...] = ("push", "pull_request")
    branches: Tuple[str, ...] = ("main",)


@dataclass(frozen=True)
class MatrixConfig:
    """
    Complete, read-only pipeline configuration.

    Attributes:
        name: Project name (used in log and summary output)
        axes: Axes in declaration order
        overrides: Override records in declaration order
        env: Pipeline-wide environment as (name, value) pairs
        components: Optional toolchain components to install with each toolchain
        profile: Cargo build profile
        trigger: Events and branches that start the pipeline
        artifact_dir: Directory for the local artifact store (relative to project)
    """

    name: str
    axes: Tuple[Axis, ...]
    overrides: Tuple[OverrideRecord, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()
    components: Tuple[str, ...] = ()
    profile: str = "release"
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    artifact_dir: Optional[str] = None

    def get_axis(self, name: str) -> Optional[Axis]:
        for axis in self.axes:
            if axis.name == name:
                return axis
        return None

    def env_map(self) -> Dict[str, str]:
        return dict(self.env)
