"""Tests for the StakeGov CLI — proves CLI dispatches correctly."""

import json
from pathlib import Path

import pytest

from stakegov.cli import build_parser, main


class TestCLIParsing:
    def test_status_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["status"])
        assert args.command == "status"
        assert args.start_time == 1_700_000_000

    def test_run_scenario_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["--start-time", "5", "run-scenario", "steps.json"])
        assert args.command == "run-scenario"
        assert args.scenario == Path("steps.json")
        assert args.start_time == 5

    def test_log_format_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-format", "xml", "status"])


class TestCLIExecution:
    def test_no_command_prints_help(self) -> None:
        assert main([]) == 0

    def test_status_runs(self, capsys: pytest.CaptureFixture) -> None:
        assert main(["status"]) == 0
        status = json.loads(capsys.readouterr().out)
        assert status["staking_pool"]["total_locked"] == 0

    def test_check_invariants_runs(self, capsys: pytest.CaptureFixture) -> None:
        assert main(["check-invariants"]) == 0
        assert "Invariant check passed." in capsys.readouterr().out

    def test_run_scenario(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        scenario = tmp_path / "scenario.json"
        scenario.write_text(json.dumps([
            {"op": "fund", "account": "alice", "amount": 100},
            {"op": "deposit", "account": "alice", "amount": 100},
            {"op": "redeem", "account": "alice", "amount": 500, "expect_failure": True},
        ]), encoding="utf-8")
        assert main(["run-scenario", str(scenario)]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert json.loads(lines[2])["outcome"] == "ok"
        assert json.loads(lines[2])["success"] is False

    def test_run_scenario_unexpected_failure(self, tmp_path: Path) -> None:
        scenario = tmp_path / "scenario.json"
        scenario.write_text(json.dumps([{"op": "redeem", "account": "alice", "amount": 1}]), encoding="utf-8")
        assert main(["run-scenario", str(scenario)]) == 1

    def test_run_scenario_bad_file(self, tmp_path: Path) -> None:
        scenario = tmp_path / "scenario.json"
        scenario.write_text("{}", encoding="utf-8")
        assert main(["run-scenario", str(scenario)]) == 1
        assert main(["run-scenario", str(tmp_path / "missing.json")]) == 1
