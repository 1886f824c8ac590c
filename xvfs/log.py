"""Write-ahead redo log that makes multi-block updates atomic.

A transaction may span several concurrent operations; the log commits only
when none of them is still active.  On disk the log is a header block
(count, then block numbers) followed by copies of the logged blocks.
"""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .bcache import Buffer, BufferCache
from .layout import BSIZE, KernelPanic, Superblock

LOGSIZE = 30
MAXOPBLOCKS = 10

_INT = struct.Struct("<i")


class Log:
    """The log of one device; recovers any committed transaction on creation."""

    def __init__(
        self,
        cache: BufferCache,
        dev: int,
        sb: Superblock,
        logsize: int = LOGSIZE,
        maxopblocks: int = MAXOPBLOCKS,
    ):
        if _INT.size * (1 + logsize) >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self.cache = cache
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self.outstanding = 0
        self.committing = False
        self.pending: list[int] = []
        self._cond = threading.Condition()
        self.recover()

    def _read_head(self) -> None:
        buf = self.cache.read(self.dev, self.start)
        try:
            (n,) = _INT.unpack_from(buf.data, 0)
            self.pending = list(struct.unpack_from(f"<{n}i", buf.data, _INT.size))
        finally:
            self.cache.release(buf)

    def _write_head(self) -> None:
        buf = self.cache.read(self.dev, self.start)
        try:
            n = len(self.pending)
            _INT.pack_into(buf.data, 0, n)
            struct.pack_into(f"<{n}i", buf.data, _INT.size, *self.pending)
            self.cache.write(buf)
        finally:
            self.cache.release(buf)

    def _copy_blocks(self, to_log: bool) -> None:
        for tail, blockno in enumerate(self.pending):
            log_buf = self.cache.read(self.dev, self.start + tail + 1)
            home_buf = self.cache.read(self.dev, blockno)
            src, dst = (home_buf, log_buf) if to_log else (log_buf, home_buf)
            dst.data[:] = src.data
            self.cache.write(dst)
            self.cache.release(src)
            self.cache.release(dst)

    def _install(self) -> None:
        self._copy_blocks(to_log=False)

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._install()
        self.pending = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while the log is committing or could fill."""
        with self._cond:
            while (
                self.committing
                or len(self.pending) + (self.outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one out commits the transaction."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise KernelPanic("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()
        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the body between begin_op and end_op."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def _commit(self) -> None:
        if self.pending:
            self._copy_blocks(to_log=True)
            self._write_head()
            self._install()
            self.pending = []
            self._write_head()

    def write(self, buf: Buffer) -> None:
        """Record a modified buffer in the current transaction and pin it in the cache."""
        if len(self.pending) >= self.logsize or len(self.pending) >= self.size - 1:
            raise KernelPanic("too big a transaction")
        if self.outstanding < 1:
            raise KernelPanic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.pending:
                self.pending.append(buf.blockno)
            buf.dirty = True