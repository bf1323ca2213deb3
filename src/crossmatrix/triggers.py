"""Pipeline triggers.

Decides whether an event starts the pipeline. Events follow the GitHub
webhook payload shape:

    push:          {"ref": "refs/heads/main", ...}
    pull_request:  {"pull_request": {"base": {"ref": "main"}}, ...}
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config.matrix_config import TriggerConfig
from .errors import PipelineConfigError

BRANCH_REF_PREFIX = "refs/heads/"


@dataclass(frozen=True)
class TriggerEvent:
    """An event that may start the pipeline."""

    name: str
    branch: Optional[str]

    @classmethod
    def from_payload(cls, name: str, payload: Dict[str, Any]) -> "TriggerEvent":
        """Extract the target branch from an event payload."""
        branch: Optional[str] = None
        if name == "pull_request":
            base = (payload.get("pull_request") or {}).get("base") or {}
            branch = base.get("ref")
        else:
            ref = payload.get("ref")
            if isinstance(ref, str) and ref.startswith(BRANCH_REF_PREFIX):
                branch = ref[len(BRANCH_REF_PREFIX):]
        return cls(name=name, branch=branch)

    @classmethod
    def from_file(cls, name: str, event_path: Path) -> "TriggerEvent":
        """Load an event payload file (e.g. $GITHUB_EVENT_PATH).

        Raises:
            PipelineConfigError: If the file cannot be read or is not JSON
        """
        try:
            with open(event_path, encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PipelineConfigError(f"Failed to read event payload {event_path}: {e}") from e
        if not isinstance(payload, dict):
            raise PipelineConfigError(f"Event payload {event_path} is not a JSON object")
        return cls.from_payload(name, payload)


def should_run(trigger: TriggerConfig, event: TriggerEvent) -> bool:
    """Whether an event targets a configured branch with a configured event type."""
    if event.name not in trigger.events:
        logging.info(f"Event '{event.name}' does not trigger this pipeline")
        return False
    if event.branch not in trigger.branches:
        logging.info(f"Branch '{event.branch}' does not trigger this pipeline")
        return False
    return True
