#!/usr/bin/env python3
"""
Lint and format the project with ruff, isort and black.

    python lint.py           # auto-fix
    python lint.py --check   # report only, non-zero exit on problems
"""

import subprocess
import sys
from pathlib import Path

TARGETS = ["regsearch", "tests", "main.py", "lint.py"]


def run_command(command: list[str], description: str) -> bool:
    print(f"\n{'=' * 80}")
    print(f"Running: {description}")
    print(f"Command: {' '.join(command)}")
    print(f"{'=' * 80}\n")

    result = subprocess.run(command, cwd=Path(__file__).parent)
    print(f"\n{'✅' if result.returncode == 0 else '❌'} {description}\n")
    return result.returncode == 0


def main() -> int:
    check_only = "--check" in sys.argv

    if check_only:
        operations = [
            (["ruff", "check", *TARGETS], "Ruff linting"),
            (["isort", "--check-only", *TARGETS], "isort import sorting check"),
            (["black", "--check", *TARGETS], "Black formatting check"),
        ]
    else:
        operations = [
            (["ruff", "check", "--fix", *TARGETS], "Ruff auto-fix"),
            (["isort", *TARGETS], "isort import sorting"),
            (["black", *TARGETS], "Black code formatting"),
        ]

    results = [run_command(command, description) for command, description in operations]

    print(f"\n{'=' * 80}\nSUMMARY\n{'=' * 80}\n")
    for (_, description), passed in zip(operations, results):
        print(f"{'✅ PASSED' if passed else '❌ FAILED'}: {description}")

    if all(results):
        return 0
    if check_only:
        print("\n⚠️  Run 'python lint.py' without --check to auto-fix.\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())
