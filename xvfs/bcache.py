"""Buffer cache: in-memory copies of disk blocks, recycled least recently used first."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol

from .layout import BSIZE, KernelPanic

NBUF = 30


class _SleepLock:
    """A lock that remembers which thread holds it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: int | None = None

    def acquire(self) -> None:
        me = threading.get_ident()
        if self._owner == me:
            raise KernelPanic("acquiresleep: lock already held")
        self._lock.acquire()
        self._owner = me

    def release(self) -> None:
        if not self.held():
            raise KernelPanic("releasesleep: lock not held")
        self._owner = None
        self._lock.release()

    def held(self) -> bool:
        return self._owner == threading.get_ident()


@dataclass(eq=False)
class Buffer:
    """A cached copy of one disk block."""

    dev: int | None = None
    blockno: int = 0
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE), repr=False)
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)

    @property
    def locked(self) -> bool:
        """True if the calling thread holds this buffer."""
        return self.lock.held()


class _Disk(Protocol):
    def sync(self, buf: Buffer) -> None: ...


class BufferCache:
    """A fixed pool of buffers shared by everyone reading and writing blocks."""

    def __init__(self, disk: _Disk, nbuf: int = NBUF):
        if nbuf < 1:
            raise ValueError("a buffer cache needs at least one buffer")
        self.disk = disk
        self._lock = threading.Lock()
        self.buffers = [Buffer() for _ in range(nbuf)]
        # Most recently used first.
        self._mru = list(reversed(self.buffers))

    def _get(self, dev: int, blockno: int) -> Buffer:
        with self._lock:
            for buf in self._mru:
                if buf.dev == dev and buf.blockno == blockno:
                    buf.refcnt += 1
                    break
            else:
                # A dirty buffer with no references still belongs to the log.
                for buf in reversed(self._mru):
                    if buf.refcnt == 0 and not buf.dirty:
                        buf.dev = dev
                        buf.blockno = blockno
                        buf.valid = False
                        buf.dirty = False
                        buf.refcnt = 1
                        break
                else:
                    raise KernelPanic("bget: no buffers")
        buf.lock.acquire()
        return buf

    def read(self, dev: int, blockno: int) -> Buffer:
        """Return the locked buffer holding block ``blockno`` of ``dev``."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            self.disk.sync(buf)
        return buf

    def write(self, buf: Buffer) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.locked:
            raise KernelPanic("bwrite")
        buf.dirty = True
        self.disk.sync(buf)

    def release(self, buf: Buffer) -> None:
        """Unlock a buffer; once unreferenced it becomes the most recently used."""
        if not buf.locked:
            raise KernelPanic("brelse")
        buf.lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)