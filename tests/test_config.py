"""Tests for configuration records and environment loading."""

from pathlib import Path

import pytest

from stakegov.config import (
    TWO_WEEKS_SECONDS,
    PollDefaults,
    SystemConfig,
    require_admin,
)
from stakegov.errors import Unauthorized


class TestRequireAdmin:
    def test_admin_passes(self) -> None:
        require_admin("admin", "admin", "StopContract")

    def test_other_sender_rejected(self) -> None:
        with pytest.raises(Unauthorized) as exc:
            require_admin("admin", "mallory", "StopContract")
        assert exc.value.details == {"sender": "mallory", "action": "StopContract"}


class TestSystemConfig:
    def test_defaults(self) -> None:
        config = SystemConfig.from_env({})
        assert config.reward_per_second == 100
        assert config.poll_defaults == PollDefaults(duration=TWO_WEEKS_SECONDS, quorum=34, min_threshold=0)
        assert config.event_log_path is None

    def test_overrides(self) -> None:
        config = SystemConfig.from_env({
            "STAKEGOV_REWARD_PER_SECOND": "7",
            "STAKEGOV_POLL_DURATION": "600",
            "STAKEGOV_POLL_QUORUM": "50",
            "STAKEGOV_POLL_MIN_THRESHOLD": "5",
            "STAKEGOV_EVENT_LOG": "/tmp/events.jsonl",
        })
        assert config.reward_per_second == 7
        assert config.poll_defaults == PollDefaults(duration=600, quorum=50, min_threshold=5)
        assert config.event_log_path == Path("/tmp/events.jsonl")

    def test_blank_values_use_defaults(self) -> None:
        assert SystemConfig.from_env({"STAKEGOV_POLL_QUORUM": " "}).poll_defaults.quorum == 34

    @pytest.mark.parametrize(
        "environ",
        [
            {"STAKEGOV_REWARD_PER_SECOND": "ten"},
            {"STAKEGOV_REWARD_PER_SECOND": "-1"},
            {"STAKEGOV_POLL_QUORUM": "101"},
            {"STAKEGOV_POLL_MIN_THRESHOLD": "-3"},
        ],
    )
    def test_invalid_values(self, environ: dict) -> None:
        with pytest.raises(ValueError):
            SystemConfig.from_env(environ)

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STAKEGOV_REWARD_PER_SECOND", "placeholder")
        monkeypatch.delenv("STAKEGOV_REWARD_PER_SECOND")
        env_file = tmp_path / ".env"
        env_file.write_text("STAKEGOV_REWARD_PER_SECOND=42\n", encoding="utf-8")
        config = SystemConfig.from_env(dotenv_path=env_file)
        assert config.reward_per_second == 42
