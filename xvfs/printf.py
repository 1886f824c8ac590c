"""Formatting that understands only %d, %x, %p, %s, %c and %%."""

from __future__ import annotations

import operator
from typing import Any, Iterator

_DIGITS = "0123456789ABCDEF"


def format_int(value: int, base: int, signed: bool) -> str:
    """Render a 32-bit integer in ``base``, with a sign only if ``signed``."""
    if not 2 <= base <= len(_DIGITS):
        raise ValueError(f"unsupported base {base}")
    value = operator.index(value) & 0xFFFFFFFF
    negative = False
    if signed and value & 0x80000000:
        negative = True
        value = (1 << 32) - value
    digits = []
    while True:
        value, digit = divmod(value, base)
        digits.append(_DIGITS[digit])
        if value == 0:
            break
    if negative:
        digits.append("-")
    return "".join(reversed(digits))


def _next_arg(args: Iterator[Any]) -> Any:
    try:
        return next(args)
    except StopIteration:
        raise TypeError("not enough arguments for format string") from None


def sprintf(fmt: str, *args: Any) -> str:
    """Format ``args`` according to ``fmt``; unknown conversions are echoed."""
    out = []
    remaining = iter(args)
    in_conversion = False
    for c in fmt:
        if not in_conversion:
            if c == "%":
                in_conversion = True
            else:
                out.append(c)
            continue
        in_conversion = False
        if c == "d":
            out.append(format_int(_next_arg(remaining), 10, True))
        elif c in "xp":
            out.append(format_int(_next_arg(remaining), 16, False))
        elif c == "s":
            text = _next_arg(remaining)
            out.append("(null)" if text is None else str(text))
        elif c == "c":
            char = _next_arg(remaining)
            out.append(char[:1] if isinstance(char, str) else chr(operator.index(char) & 0xFF))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)