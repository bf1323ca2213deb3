"""
crossmatrix.ini configuration parser.

This module parses the pipeline configuration file and produces the
immutable MatrixConfig consumed by the matrix expander and job planner.
"""

import configparser
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import PipelineConfigError
from .matrix_config import (
    ENV_PREFIX,
    KNOWN_FIELDS,
    OS_AXIS,
    TOOLCHAIN_AXIS,
    Axis,
    MatrixConfig,
    OverrideRecord,
    TriggerConfig,
)

DEFAULT_CONFIG_NAME = "crossmatrix.ini"


class PipelineConfig:
    """
    Parser for crossmatrix.ini configuration files.

    Example crossmatrix.ini:
        [pipeline]
        name = aarf
        branches = main

        [axis:os]
        values = ubuntu-latest, windows-latest, macos-latest

        [axis:toolchain]
        values = nightly-2023-04-16, stable

        [override:os=windows-latest]
        target = x86_64-pc-windows-msvc
        target_name = aarf.exe

    Usage:
        config = PipelineConfig(Path("crossmatrix.ini"))
        matrix_config = config.load()
    """

    REQUIRED_AXES = (OS_AXIS, TOOLCHAIN_AXIS)

    def __init__(self, ini_path: Path):
        """
        Initialize the parser with a crossmatrix.ini file.

        Args:
            ini_path: Path to the configuration file

        Raises:
            PipelineConfigError: If the file doesn't exist or cannot be parsed
        """
        self.ini_path = ini_path

        if not ini_path.exists():
            raise PipelineConfigError(f"Configuration file not found: {ini_path}")

        self.config = configparser.ConfigParser(
            allow_no_value=True, interpolation=configparser.ExtendedInterpolation()
        )
        # Environment variable names are case sensitive
        self.config.optionxform = str  # type: ignore[assignment,method-assign]

        try:
            self.config.read(ini_path, encoding="utf-8")
        except configparser.Error as e:
            raise PipelineConfigError(f"Failed to parse {ini_path}: {e}") from e

    @staticmethod
    def split_list(value: Optional[str]) -> List[str]:
        """
        Split a comma and/or newline separated value.

        Example:
            'ubuntu-latest, windows-latest\\nmacos-latest'
            -> ['ubuntu-latest', 'windows-latest', 'macos-latest']
        """
        if not value:
            return []
        items = []
        for line in value.split("\n"):
            for item in line.split(","):
                item = item.strip()
                if item:
                    items.append(item)
        return items

    def _get(self, section: str, key: str) -> str:
        try:
            value = self.config[section].get(key)
        except configparser.Error as e:
            raise PipelineConfigError(f"Invalid value for '{key}' in [{section}]: {e}") from e
        return (value or "").strip()

    def get_axes(self) -> Tuple[Axis, ...]:
        """
        Get all axes in file order.

        Raises:
            PipelineConfigError: If a required axis section is missing
        """
        axes = []
        for section in self.config.sections():
            if section.startswith("axis:"):
                name = section.split(":", 1)[1].strip()
                values = self.split_list(self._get(section, "values"))
                axes.append(Axis(name=name, values=tuple(values)))

        names = {axis.name for axis in axes}
        missing = [name for name in self.REQUIRED_AXES if name not in names]
        if missing:
            raise PipelineConfigError(
                f"{self.ini_path} is missing required axis sections: "
                + ", ".join(f"[axis:{name}]" for name in missing)
            )
        return tuple(axes)

    @staticmethod
    def parse_override_key(key: str) -> Dict[str, str]:
        """
        Parse the match part of an override section name.

        Example:
            'os=windows-latest,toolchain=stable'
            -> {'os': 'windows-latest', 'toolchain': 'stable'}

        Raises:
            PipelineConfigError: If a term is not of the form axis=value
        """
        match: Dict[str, str] = {}
        for term in key.split(","):
            axis, sep, value = term.partition("=")
            axis, value = axis.strip(), value.strip()
            if not sep or not axis or not value:
                raise PipelineConfigError(
                    f"Malformed override section [override:{key}]: expected axis=value terms"
                )
            if axis in match:
                raise PipelineConfigError(
                    f"Malformed override section [override:{key}]: axis '{axis}' listed twice"
                )
            match[axis] = value
        return match

    def get_overrides(self) -> Tuple[OverrideRecord, ...]:
        """Get all override records in file order."""
        records = []
        for section in self.config.sections():
            if not section.startswith("override:"):
                continue
            match = self.parse_override_key(section.split(":", 1)[1])
            fields: Dict[str, str] = {}
            for key in self.config[section]:
                if key not in KNOWN_FIELDS and not (
                    key.startswith(ENV_PREFIX) and len(key) > len(ENV_PREFIX)
                ):
                    raise PipelineConfigError(
                        f"Unknown field '{key}' in [{section}]. "
                        + f"Allowed: {', '.join(KNOWN_FIELDS)}, env.<NAME>"
                    )
                fields[key] = self._get(section, key)
            records.append(OverrideRecord.create(match, fields))
        return tuple(records)

    def get_env(self) -> Tuple[Tuple[str, str], ...]:
        """Get the pipeline-wide environment from the [env] section."""
        if "env" not in self.config:
            return ()
        return tuple((key, self._get("env", key)) for key in self.config["env"])

    def get_trigger(self) -> TriggerConfig:
        if "pipeline" not in self.config:
            return TriggerConfig()
        events = self.split_list(self._get("pipeline", "events"))
        branches = self.split_list(self._get("pipeline", "branches"))
        default = TriggerConfig()
        return TriggerConfig(
            events=tuple(events) or default.events,
            branches=tuple(branches) or default.branches,
        )

    def load(self) -> MatrixConfig:
        """
        Load the complete configuration.

        Returns:
            Immutable MatrixConfig

        Raises:
            PipelineConfigError: If the configuration is malformed
        """
        pipeline = self.config["pipeline"] if "pipeline" in self.config else None
        name = self._get("pipeline", "name") if pipeline is not None else ""
        profile = self._get("pipeline", "profile") if pipeline is not None else ""
        components = (
            self.split_list(self._get("pipeline", "components")) if pipeline is not None else []
        )
        artifact_dir = self._get("pipeline", "artifact_dir") if pipeline is not None else ""

        return MatrixConfig(
            name=name or self.ini_path.resolve().parent.name,
            axes=self.get_axes(),
            overrides=self.get_overrides(),
            env=self.get_env(),
            components=tuple(components),
            profile=profile or "release",
            trigger=self.get_trigger(),
            artifact_dir=artifact_dir or None,
        )


def load_config(project_dir: Path, config_path: Optional[Path] = None) -> MatrixConfig:
    """Load the pipeline configuration for a project directory."""
    ini_path = config_path if config_path is not None else project_dir / DEFAULT_CONFIG_NAME
    return PipelineConfig(ini_path).load()
