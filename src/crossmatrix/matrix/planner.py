"""Job planning.

Turns matrix entries into fully resolved, immutable job descriptors by
merging every matching override record into the entry.

Design:
    - Override merging is a pure function (merge_overrides)
    - Two records supplying the same field for one entry is a conflict, never
      resolved by precedence
    - target and target_name must be non-empty after the merge
    - Published artifact names and job ids must be unique across the whole matrix
"""

import logging
import re
import shlex
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from ..config.matrix_config import (
    ENV_PREFIX,
    OS_AXIS,
    TOOLCHAIN_AXIS,
    MatrixConfig,
    OverrideRecord,
)
from ..errors import (
    ArtifactNameCollisionError,
    ConfigurationConflictError,
    JobIdCollisionError,
    MatrixConfigError,
    MissingFieldError,
)
from .expander import MatrixEntry, MatrixExpander

REQUIRED_FIELDS = ("target", "target_name")

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class JobDescriptor:
    """Fully resolved description of one build/test/publish cycle.

    Attributes:
        os: Runner operating system label (e.g. "ubuntu-latest")
        toolchain: Toolchain version identifier (e.g. "stable")
        flags: Extra build flags, empty when the toolchain needs none
        target: Target triple (e.g. "x86_64-unknown-linux-gnu")
        target_name: File name of the produced binary (e.g. "aarf.exe")
        env: Job environment as sorted (name, value) pairs
        axes: All axis values of the originating matrix entry
    """

    os: str
    toolchain: str
    flags: Tuple[str, ...]
    target: str
    target_name: str
    env: Tuple[Tuple[str, str], ...] = ()
    axes: Tuple[Tuple[str, str], ...] = ()

    @property
    def job_id(self) -> str:
        """Filesystem-safe identity, e.g. 'ubuntu-latest-nightly-2023-04-16'."""
        values = [value for _, value in self.axes] or [self.os, self.toolchain]
        return _UNSAFE_ID_CHARS.sub("_", "-".join(values))

    @property
    def artifact_name(self) -> str:
        """Published artifact name: '<target_name> <os> <toolchain>'."""
        return f"{self.target_name} {self.os} {self.toolchain}"

    @property
    def label(self) -> str:
        """Every axis value, e.g. '(ubuntu-latest, stable)'."""
        values = [value for _, value in self.axes] or [self.os, self.toolchain]
        return "(" + ", ".join(values) + ")"

    def env_map(self) -> Dict[str, str]:
        return dict(self.env)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "job_id": self.job_id,
            "os": self.os,
            "toolchain": self.toolchain,
            "flags": list(self.flags),
            "target": self.target,
            "target_name": self.target_name,
            "env": self.env_map(),
            "artifact_name": self.artifact_name,
        }


def merge_overrides(
    entry: MatrixEntry, records: Sequence[OverrideRecord]
) -> Dict[str, Tuple[str, OverrideRecord]]:
    """Merge the fields of every record matching an entry.

    Args:
        entry: Matrix entry to resolve
        records: All override records

    Returns:
        Mapping of field name to (value, supplying record)

    Raises:
        ConfigurationConflictError: If two matching records supply the same field
    """
    values = entry.as_dict()
    merged: Dict[str, Tuple[str, OverrideRecord]] = {}
    for record in records:
        if not record.matches(values):
            continue
        for field_name, value in record.fields:
            if field_name in merged:
                raise ConfigurationConflictError(
                    field_name, entry.label, merged[field_name][1].label, record.label
                )
            merged[field_name] = (value, record)
    return merged


class JobPlanner:
    """
    Plans job descriptors from an immutable matrix configuration.

    Example usage:
        planner = JobPlanner(matrix_config)
        jobs = planner.plan()
        for job in jobs:
            print(job.artifact_name)
    """

    def __init__(self, config: MatrixConfig):
        self.config = config
        self.expander = MatrixExpander(config.axes)

    def validate_overrides(self) -> None:
        """
        Reject override records that can never match.

        Raises:
            MatrixConfigError: If a record names an unknown axis or value
        """
        for record in self.config.overrides:
            for axis_name, value in record.match:
                axis = self.config.get_axis(axis_name)
                if axis is None:
                    raise MatrixConfigError(f"[{record.label}] refers to unknown axis '{axis_name}'")
                if value not in axis.values:
                    raise MatrixConfigError(
                        f"[{record.label}] refers to '{value}', which is not a value of "
                        + f"axis '{axis_name}' ({', '.join(axis.values)})"
                    )

    def plan_entry(self, entry: MatrixEntry) -> JobDescriptor:
        """
        Resolve one matrix entry into a job descriptor.

        Raises:
            ConfigurationConflictError: If overrides conflict for this entry
            MissingFieldError: If target or target_name is missing or empty
            MatrixConfigError: If the flags do not parse as shell words
        """
        merged = merge_overrides(entry, self.config.overrides)
        fields = {name: value for name, (value, _) in merged.items()}
        values = entry.as_dict()

        missing = [name for name in REQUIRED_FIELDS if not fields.get(name, "").strip()]
        for axis_name in (OS_AXIS, TOOLCHAIN_AXIS):
            if not values.get(axis_name):
                missing.append(axis_name)
        if missing:
            raise MissingFieldError(entry.label, missing)

        env = self.config.env_map()
        for name, value in fields.items():
            if name.startswith(ENV_PREFIX):
                env[name[len(ENV_PREFIX):]] = value

        try:
            flags = tuple(shlex.split(fields.get("flags", "")))
        except ValueError as e:
            raise MatrixConfigError(
                f"Invalid flags for {entry.label} in [{merged['flags'][1].label}]: {e}"
            ) from e

        return JobDescriptor(
            os=values[OS_AXIS],
            toolchain=values[TOOLCHAIN_AXIS],
            flags=flags,
            target=fields["target"].strip(),
            target_name=fields["target_name"].strip(),
            env=tuple(sorted(env.items())),
            axes=entry.values,
        )

    def plan(self) -> List[JobDescriptor]:
        """
        Expand and plan the whole matrix.

        Returns:
            Job descriptors in expansion order

        Raises:
            PlanningError: On any configuration problem; no partial plan is returned
        """
        self.validate_overrides()
        entries = self.expander.expand()
        jobs = [self.plan_entry(entry) for entry in entries]

        seen: Dict[str, JobDescriptor] = {}
        for job in jobs:
            other = seen.get(job.artifact_name)
            if other is not None:
                raise ArtifactNameCollisionError(
                    f"Jobs {other.label} and {job.label} would both publish '{job.artifact_name}'"
                )
            seen[job.artifact_name] = job

        ids: Dict[str, JobDescriptor] = {}
        for job in jobs:
            other = ids.get(job.job_id)
            if other is not None:
                raise JobIdCollisionError(
                    f"Jobs {other.label} and {job.label} would both use job id '{job.job_id}'; "
                    + "rename an axis value"
                )
            ids[job.job_id] = job

        logging.info(f"Planned {len(jobs)} jobs for {self.config.name}")
        return jobs
