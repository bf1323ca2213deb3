"""
Unit tests for pipeline triggers.
"""

import json

import pytest

from crossmatrix.config import TriggerConfig
from crossmatrix.errors import PipelineConfigError
from crossmatrix.triggers import TriggerEvent, should_run


class TestTriggerEvent:
    """Test event payload parsing."""

    def test_push_payload(self):
        event = TriggerEvent.from_payload("push", {"ref": "refs/heads/main"})
        assert event == TriggerEvent(name="push", branch="main")

    def test_push_to_tag_has_no_branch(self):
        assert TriggerEvent.from_payload("push", {"ref": "refs/tags/v1.0"}).branch is None

    def test_pull_request_uses_base_branch(self):
        payload = {"pull_request": {"head": {"ref": "feature"}, "base": {"ref": "main"}}}
        assert TriggerEvent.from_payload("pull_request", payload).branch == "main"

    def test_from_file(self, tmp_path):
        path = tmp_path / "event.json"
        path.write_text(json.dumps({"ref": "refs/heads/release/1.x"}))
        assert TriggerEvent.from_file("push", path).branch == "release/1.x"

    def test_from_file_invalid_json(self, tmp_path):
        path = tmp_path / "event.json"
        path.write_text("{not json")
        with pytest.raises(PipelineConfigError, match="Failed to read event payload"):
            TriggerEvent.from_file("push", path)

    def test_from_file_not_an_object(self, tmp_path):
        path = tmp_path / "event.json"
        path.write_text("[]")
        with pytest.raises(PipelineConfigError, match="not a JSON object"):
            TriggerEvent.from_file("push", path)


class TestShouldRun:
    """Test trigger matching."""

    @pytest.mark.parametrize(
        "name,branch,expected",
        [
            ("push", "main", True),
            ("pull_request", "main", True),
            ("push", "develop", False),
            ("release", "main", False),
            ("push", None, False),
        ],
    )
    def test_default_trigger(self, name, branch, expected):
        assert should_run(TriggerConfig(), TriggerEvent(name=name, branch=branch)) is expected

    def test_custom_branches(self):
        trigger = TriggerConfig(events=("push",), branches=("main", "release"))
        assert should_run(trigger, TriggerEvent(name="push", branch="release"))
        assert not should_run(trigger, TriggerEvent(name="pull_request", branch="release"))
