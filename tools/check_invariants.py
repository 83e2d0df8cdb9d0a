#!/usr/bin/env python3
"""StakeGov conservation invariant checks against a replayed scenario.

Usage:
    python tools/check_invariants.py                 # built-in scenario
    python tools/check_invariants.py scenario.json   # custom scenario
"""

import json
import sys
from pathlib import Path

from stakegov.invariants import DEFAULT_SCENARIO, check


def load_json(path: Path) -> list:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def main(argv: list) -> int:
    steps = load_json(Path(argv[0])) if argv else DEFAULT_SCENARIO
    return check(steps)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
