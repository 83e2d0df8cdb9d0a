"""StakeGov CLI — drive an in-memory deployment from the command line.

Usage:
    python -m stakegov.cli status
    python -m stakegov.cli run-scenario scenario.json
    python -m stakegov.cli run-scenario scenario.json --start-time 1700000000
    python -m stakegov.cli check-invariants

A scenario file is a JSON list of steps, for example:
    [{"op": "fund", "account": "alice", "amount": 1000},
     {"op": "deposit", "account": "alice", "amount": 100},
     {"op": "advance", "seconds": 60},
     {"op": "redeem", "account": "alice"}]
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from stakegov.config import SystemConfig
from stakegov.invariants import check, check_service
from stakegov.logging import setup_logging
from stakegov.service import StakeGovService


def _make_service(args: argparse.Namespace) -> StakeGovService:
    config = SystemConfig.from_env(dotenv_path=args.env_file)
    return StakeGovService(config, start_time=args.start_time)


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_run_scenario(args: argparse.Namespace) -> int:
    try:
        steps = json.loads(args.scenario.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Failed: cannot read scenario {args.scenario}: {e}", file=sys.stderr)
        return 1
    if not isinstance(steps, list):
        print("Failed: a scenario must be a JSON list of steps", file=sys.stderr)
        return 1

    service = _make_service(args)
    exit_code = 0
    for number, (step, result) in enumerate(zip(steps, service.run_scenario(steps)), 1):
        expected = not step.get("expect_failure", False)
        marker = "ok" if result.success == expected else "UNEXPECTED"
        if result.success != expected:
            exit_code = 1
        line = {"step": number, "op": step.get("op"), "outcome": marker, "success": result.success}
        if result.success:
            line["data"] = result.data
        else:
            line["errors"] = result.errors
        print(json.dumps(line, default=str))

    violations = check_service(service)
    for violation in violations:
        print(f"Invariant violated: {violation}", file=sys.stderr)
    if violations:
        exit_code = 1
    print(json.dumps(service.status(), indent=2))
    return exit_code


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Replay the built-in scenario and check conservation invariants."""
    return check(start_time=args.start_time)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stakegov",
        description="StakeGov — staking ledger and stake-weighted governance",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: ./.env if present)",
    )
    parser.add_argument(
        "--start-time",
        type=int,
        default=1_700_000_000,
        help="Initial block time in unix seconds (default: 1700000000)",
    )
    parser.add_argument("--log-format", choices=["json", "console"], help="Log output format")
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show the status of a fresh deployment")

    # run-scenario
    p_run = sub.add_parser("run-scenario", help="Run a JSON scenario against a fresh deployment")
    p_run.add_argument("scenario", type=Path, help="Path to the scenario JSON file")

    # check-invariants
    sub.add_parser("check-invariants", help="Run conservation invariant checks")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(log_format=args.log_format)

    commands = {
        "status": cmd_status,
        "run-scenario": cmd_run_scenario,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
