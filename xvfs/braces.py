"""Check a string for balanced curly braces and record the verdict."""

from __future__ import annotations

import os
import sys
from typing import Sequence

RESULT_FILE = "Result.txt"


def is_balanced(text: str) -> bool:
    """True if every ``}`` closes an earlier ``{`` and none stay open."""
    balance = 0
    for ch in text:
        if ch == "{":
            balance += 1
        elif ch == "}":
            balance -= 1
            if balance < 0:
                return False
    return balance == 0


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("Usage: app_name <string>", file=sys.stderr)
        return 1
    verdict = b"Right\n" if is_balanced(args[0]) else b"Wrong\n"
    try:
        fd = os.open(RESULT_FILE, os.O_CREAT | os.O_WRONLY, 0o666)
    except OSError:
        print(f"Error: Could not create {RESULT_FILE}", file=sys.stderr)
        return 1
    # The file is not truncated: the verdict overwrites its first bytes.
    with os.fdopen(fd, "wb") as out:
        out.write(verdict)
    return 0