#!/usr/bin/env python3
"""
Lint/format check for the package and its tests.
Runs ruff and black in check mode when they are installed; skips each otherwise.

Usage: python make_lint.py [paths...]   (defaults to composim/ and tests/)
"""
from __future__ import annotations

import shutil
import subprocess
import sys


DEFAULT_PATHS = ["composim", "tests"]


def run(cmd: list[str]) -> int:
    try:
        return subprocess.run(cmd, check=False).returncode
    except FileNotFoundError:
        return 0


def main(argv: list[str] | None = None) -> int:
    paths = list(argv if argv is not None else sys.argv[1:]) or DEFAULT_PATHS
    rc = 0
    if shutil.which("ruff"):
        rc |= run(["ruff", "check", *paths])
    if shutil.which("black"):
        rc |= run(["black", "--check", "--line-length", "120", *paths])
    return rc


if __name__ == "__main__":
    sys.exit(main())
