"""Tests for the policy resolver — proves it loads and validates ballot config."""

import json
from pathlib import Path

import pytest

from ballot.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


class TestLoading:
    def test_repo_config_loads(self) -> None:
        resolver = PolicyResolver.from_config_dir(CONFIG_DIR)
        assert resolver.sentinel_description == "GENESIS"
        assert resolver.events_file == "events.jsonl"
        assert resolver.state_file == "state.json"

    def test_missing_file_yields_defaults(self, tmp_path: Path) -> None:
        assert PolicyResolver.from_config_dir(tmp_path) == PolicyResolver.default()

    def test_partial_file_merges_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "ballot_policy.json").write_text(
            json.dumps({"sentinel_description": "BLANK VOTE"}), encoding="utf-8"
        )
        resolver = PolicyResolver.from_config_dir(tmp_path)
        assert resolver.sentinel_description == "BLANK VOTE"
        assert resolver.events_file == "events.jsonl"

    def test_non_object_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "ballot_policy.json").write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError, match="JSON object"):
            PolicyResolver.from_config_dir(tmp_path)

    def test_paths_resolve_under_data_dir(self, tmp_path: Path) -> None:
        resolver = PolicyResolver.default()
        assert resolver.events_path(tmp_path) == tmp_path / "events.jsonl"
        assert resolver.state_path(tmp_path) == tmp_path / "state.json"


class TestValidation:
    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown policy keys: quorum"):
            PolicyResolver.from_dict({"quorum": 3})

    @pytest.mark.parametrize("value", ["", "   ", 7])
    def test_bad_sentinel_rejected(self, value) -> None:
        with pytest.raises(ValueError, match="sentinel_description"):
            PolicyResolver.from_dict({"sentinel_description": value})

    @pytest.mark.parametrize("name", ["../events.jsonl", "logs/events.jsonl", ""])
    def test_events_file_must_be_plain_name(self, name: str) -> None:
        with pytest.raises(ValueError, match="events_file"):
            PolicyResolver.from_dict({"events_file": name})

    def test_files_must_differ(self) -> None:
        with pytest.raises(ValueError, match="must differ"):
            PolicyResolver.from_dict({"events_file": "x.json", "state_file": "x.json"})
