"""A small grep supporting only the ``^ . * $`` operators."""

from __future__ import annotations

import sys
from typing import IO, Iterator, Sequence

_BUFSIZE = 1024


def match(pattern: str, text: str) -> bool:
    """Search for ``pattern`` anywhere in ``text``."""
    if pattern.startswith("^"):
        return match_here(pattern[1:], text)
    return any(match_here(pattern, text[start:]) for start in range(len(text) + 1))


def match_here(pattern: str, text: str) -> bool:
    """Search for ``pattern`` at the beginning of ``text``."""
    if not pattern:
        return True
    if len(pattern) > 1 and pattern[1] == "*":
        return match_star(pattern[0], pattern[2:], text)
    if pattern == "$":
        return text == ""
    if text and pattern[0] in (".", text[0]):
        return match_here(pattern[1:], text[1:])
    return False


def match_star(c: str, pattern: str, text: str) -> bool:
    """Search for ``c*pattern`` at the beginning of ``text``."""
    while True:
        if match_here(pattern, text):
            return True
        if not text or not (text[0] == c or c == "."):
            return False
        text = text[1:]


def grep(pattern: str, stream: IO[str]) -> Iterator[str]:
    """Yield each newline-terminated line of ``stream`` that matches.

    Input is read through a fixed buffer; a buffer's worth of text with no
    newline in it is dropped, and a final line without a newline is ignored.
    """
    pending = ""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            return
        pending += chunk
        *lines, rest = pending.split("\n")
        for line in lines:
            if match(pattern, line):
                yield line + "\n"
        pending = rest if lines else ""


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, *paths = args
    if not paths:
        sys.stdout.writelines(grep(pattern, sys.stdin))
        return 0
    for path in paths:
        try:
            stream = open(path, encoding="utf-8", errors="replace")
        except OSError:
            print(f"grep: cannot open {path}")
            return 1
        with stream:
            sys.stdout.writelines(grep(pattern, stream))
    return 0