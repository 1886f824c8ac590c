"""Console line discipline with history, suggestions and copy/paste.

Typed characters are gathered into a circular input buffer and echoed to
``output``; a line becomes readable once it ends with a newline or ^D, or
once the buffer fills.  Editing keys:

* backspace / ^H erase a character, ^U erases the line;
* ESC [ A and ESC [ B walk back and forth through the last ten lines;
* tab completes the current text from the history;
* ^R inserts the last five lines;
* ^C twice marks a span (counted with the left-arrow key) to copy, ^V pastes it;
* ^P asks for a process listing through ``on_procdump``.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterable, Iterator

INPUT_BUF = 128
HIST_SIZE = 10

BACKSPACE = 0x100
LEFT_ARROW = 0xE4
ARROW_UP = 65
ARROW_DOWN = 66
ESC = 27


def _ctrl(x: str) -> int:
    return ord(x) - ord("@")


_CTRL_C = _ctrl("C")
_CTRL_D = _ctrl("D")
_CTRL_H = _ctrl("H")
_CTRL_P = _ctrl("P")
_CTRL_R = _ctrl("R")
_CTRL_U = _ctrl("U")
_CTRL_V = _ctrl("V")
_EOF_CHAR = chr(_CTRL_D)


def _prefix_equal(a: str, b: str, n: int) -> bool:
    """Compare at most ``n`` characters, each side ending at its first NUL."""
    return a[:n].split("\0", 1)[0] == b[:n].split("\0", 1)[0]


class Console:
    """Keyboard input buffer and echoed output of one console."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._out: list[str] = []
        self.on_procdump: Callable[[], None] | None = None

        self._buf = ["\0"] * INPUT_BUF
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index

        self._history = [""] * HIST_SIZE
        self._queue_idx = 0
        self._last_used_idx = 0
        self._last_arrow_idx = 0
        self._suggestion_used = False
        self._original_cmd = ""
        self._total_count = 0
        self._last_arrow_total = 0

        self._back_steps = 0
        self._copy_presses = 0
        self._copy_upper = 0
        self._copy_lower = 0
        self._clipboard = ""

    @property
    def output(self) -> str:
        """Everything echoed so far; an erased character shows as ``\\b \\b``."""
        return "".join(self._out)

    # Low-level echo and buffer handling.

    def _putc(self, c: int | str) -> None:
        if c == BACKSPACE:
            self._out.append("\b \b")
        else:
            self._out.append(c if isinstance(c, str) else chr(c))

    def _store(self, ch: str) -> None:
        self._buf[self._e % INPUT_BUF] = ch
        self._e += 1
        self._putc(ch)

    def _puts(self, s: str) -> None:
        for ch in s[:INPUT_BUF]:
            if ch == "\0":
                break
            self._store(ch)

    def _clear_line(self) -> None:
        while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != "\n":
            self._e -= 1
            self._putc(BACKSPACE)

    def _span(self, start: int, end: int) -> str:
        return "".join(self._buf[i % INPUT_BUF] for i in range(start, end))

    # History.

    def _suggestion(self, cmd: str) -> int | None:
        for i in range(HIST_SIZE):
            idx = (i + self._last_used_idx) % HIST_SIZE
            if _prefix_equal(cmd, self._history[idx], len(cmd)):
                return idx
        return None

    def _suggest(self) -> None:
        if not self._suggestion_used:
            self._original_cmd = self._span(self._w, self._e)
        idx = self._suggestion(self._original_cmd)
        if idx is None:
            self._putc("\a")
            return
        self._suggestion_used = True
        self._last_used_idx = idx + 1
        self._clear_line()
        self._puts(self._history[idx])

    def _last_five(self) -> None:
        indexes = []
        mod = self._total_count % HIST_SIZE
        for _ in range(5):
            if mod == 0:
                mod = HIST_SIZE
            indexes.append(mod - 1)
            mod -= 1

        self._puts("Last 5: ")
        if self._total_count > HIST_SIZE:
            for idx in indexes:
                self._puts(self._history[idx])
                self._puts("  ")
        else:
            used = sum(1 for cmd in self._history if cmd)
            for idx in range(used - 1, max(used - 5, 0) - 1, -1):
                self._puts(self._history[idx])
                self._puts("  ")

    def _push_history(self) -> None:
        if self._e - self._w == 1:
            return
        self._history[self._queue_idx] = self._span(self._w, self._e - 1)
        self._queue_idx = (self._queue_idx + 1) % HIST_SIZE
        self._last_arrow_idx = self._queue_idx
        self._total_count += 1
        self._last_arrow_total = self._total_count
        self._suggestion_used = False
        self._last_used_idx = 0
        self._original_cmd = ""

    def _history_up(self) -> None:
        if 0 < self._last_arrow_total and self._last_arrow_total > self._total_count - HIST_SIZE:
            self._last_arrow_total -= 1
            self._last_arrow_idx = (self._last_arrow_idx - 1) % HIST_SIZE
            self._clear_line()
            self._puts(self._history[self._last_arrow_idx])
        else:
            self._putc("\a")

    def _history_down(self) -> None:
        if self._last_arrow_total < self._total_count:
            self._last_arrow_total += 1
            self._last_arrow_idx = (self._last_arrow_idx + 1) % HIST_SIZE
            self._clear_line()
            self._puts(self._history[self._last_arrow_idx])
        else:
            self._putc("\a")

    # Copy and paste.

    def _chars_in_buffer(self) -> int:
        return sum(1 for ch in self._buf if ch != "\0")

    def _copy(self) -> None:
        self._copy_presses += 1
        if self._copy_presses == 1:
            self._copy_upper = self._back_steps
        elif self._copy_presses == 2:
            self._copy_lower = self._back_steps
            self._back_steps = 0
            self._copy_presses = 0
            length = self._chars_in_buffer()
            self._clipboard = "".join(
                self._buf[i]
                for i in range(length - self._copy_lower, length - self._copy_upper)
                if 0 <= i < INPUT_BUF
            )

    def _paste(self) -> None:
        for ch in self._clipboard:
            self._putc(ch)
        self._puts("\n")

    # Input.

    def _plain(self, c: int) -> None:
        if c <= 0 or self._e - self._r >= INPUT_BUF:
            return
        ch = "\n" if c == ord("\r") else chr(c)
        self._store(ch)
        if ch == "\n" or ch == _EOF_CHAR or self._e == self._r + INPUT_BUF:
            self._push_history()
            self._w = self._e
            self._cond.notify_all()

    def _key(self, c: int, getc: Callable[[], int]) -> bool:
        """Handle one key; True if a process listing was asked for."""
        if c == _CTRL_P:
            return True
        if c == _CTRL_U:
            self._clear_line()
        elif c in (_CTRL_H, 0x7F):
            if self._e != self._w:
                self._e -= 1
                self._putc(BACKSPACE)
                self._suggestion_used = False
        elif c == _CTRL_R:
            self._last_five()
        elif c == _CTRL_C:
            self._copy()
        elif c == _CTRL_V:
            self._paste()
        elif c == ord("\t"):
            self._suggest()
        elif c == LEFT_ARROW:
            if self._e > self._w:
                self._back_steps += 1
        elif c == ESC:
            c = getc()
            if c == ord("["):
                c = getc()
                if c == ARROW_UP:
                    self._history_up()
                    return False
                if c == ARROW_DOWN:
                    self._history_down()
                    return False
                self._store(chr(ESC))
                self._store("[")
            else:
                self._store(chr(ESC))
            self._plain(c)
        else:
            self._plain(c)
        return False

    def feed(self, chars: str | Iterable[int]) -> None:
        """Process typed characters, given as a string or as character codes."""
        codes: Iterator[int] = (
            (ord(ch) for ch in chars) if isinstance(chars, str) else iter(chars)
        )

        def getc() -> int:
            return next(codes, -1)

        procdump = False
        with self._cond:
            while (c := getc()) >= 0:
                if self._key(c, getc):
                    procdump = True
        if procdump and self.on_procdump is not None:
            self.on_procdump()

    def read(self, n: int) -> str:
        """Read up to ``n`` characters of committed input, at most one line.

        Blocks until input is available.  ^D ends the read; if characters were
        already read it is kept so that the next read returns nothing.
        """
        out: list[str] = []
        remaining = n
        with self._cond:
            while remaining > 0:
                while self._r == self._w:
                    self._cond.wait()
                ch = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if ch == _EOF_CHAR:
                    if remaining < n:
                        self._r -= 1
                    break
                out.append(ch)
                remaining -= 1
                if ch == "\n":
                    break
        return "".join(out)

    def write(self, data: str | bytes) -> int:
        """Echo ``data`` to the console; return its length."""
        with self._cond:
            for item in data:
                self._putc(chr(item & 0xFF) if isinstance(item, int) else item)
        return len(data)