"""Open files: a shared table of file objects backed by inodes or pipes."""

from __future__ import annotations

import enum
import errno
import threading
from dataclasses import dataclass

from .fs import FileSystem, Inode, Stat
from .layout import BSIZE, KernelPanic

PIPESIZE = 512
NFILE = 100


class FileType(enum.Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


class Pipe:
    """A bounded byte channel between a writing end and a reading end."""

    def __init__(self) -> None:
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True
        self._cond = threading.Condition()

    def write(self, data: bytes) -> int:
        """Write all of ``data``, waiting while the pipe is full.

        Raises BrokenPipeError if the pipe fills up with no reader left.
        """
        view = memoryview(bytes(data))
        with self._cond:
            while view:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError(errno.EPIPE, "pipe has no reader")
                    self._cond.notify_all()
                    self._cond.wait()
                room = PIPESIZE - (self.nwrite - self.nread)
                start = self.nwrite % PIPESIZE
                count = min(len(view), room, PIPESIZE - start)
                self._data[start:start + count] = view[:count]
                self.nwrite += count
                view = view[count:]
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, waiting while the pipe is empty and a writer remains.

        Returns an empty result once the pipe is empty and the writer is gone.
        """
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            count = max(0, min(n, self.nwrite - self.nread))
            out = bytes(
                self._data[(self.nread + i) % PIPESIZE] for i in range(count)
            )
            self.nread += count
            self._cond.notify_all()
        return out

    def close(self, writable: bool) -> None:
        """Close the writing end if ``writable``, otherwise the reading end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()


@dataclass(eq=False)
class OpenFile:
    """One entry of the file table."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """A fixed number of open-file entries shared by everyone."""

    def __init__(self, fs: FileSystem, nfile: int = NFILE):
        self.fs = fs
        self._lock = threading.Lock()
        self.files = [OpenFile() for _ in range(nfile)]

    def alloc(self) -> OpenFile:
        """Take a free entry with one reference; OSError if the table is full."""
        with self._lock:
            for f in self.files:
                if f.ref == 0:
                    f.type = FileType.NONE
                    f.ref = 1
                    f.readable = False
                    f.writable = False
                    f.pipe = None
                    f.ip = None
                    f.off = 0
                    return f
        raise OSError(errno.ENFILE, "file table full")

    def dup(self, f: OpenFile) -> OpenFile:
        """Take another reference to ``f``."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.type, f.pipe, f.ip, f.writable
            f.type = FileType.NONE
        if kind is FileType.PIPE and pipe is not None:
            pipe.close(writable)
        elif kind is FileType.INODE and ip is not None:
            with self.fs.log.transaction():
                self.fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        """Metadata of the inode behind ``f``."""
        if f.type is not FileType.INODE or f.ip is None:
            raise OSError(errno.EBADF, "not an inode file")
        self.fs.ilock(f.ip)
        try:
            return self.fs.stati(f.ip)
        finally:
            self.fs.iunlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f`` at its offset."""
        if not f.readable:
            raise OSError(errno.EBADF, "file not open for reading")
        if f.type is FileType.PIPE and f.pipe is not None:
            return f.pipe.read(n)
        if f.type is FileType.INODE and f.ip is not None:
            self.fs.ilock(f.ip)
            try:
                data = self.fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self.fs.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: OpenFile, data: bytes) -> int:
        """Write ``data`` to ``f`` at its offset; return the number of bytes written.

        Inode writes go a few blocks at a time so that no single transaction
        outgrows the log.
        """
        if not f.writable:
            raise OSError(errno.EBADF, "file not open for writing")
        if f.type is FileType.PIPE and f.pipe is not None:
            return f.pipe.write(data)
        if f.type is FileType.INODE and f.ip is not None:
            data = bytes(data)
            max_chunk = ((self.fs.log.maxopblocks - 1 - 1 - 2) // 2) * BSIZE
            written = 0
            while written < len(data):
                chunk = data[written:written + max_chunk]
                with self.fs.log.transaction():
                    self.fs.ilock(f.ip)
                    try:
                        r = self.fs.writei(f.ip, chunk, f.off)
                        if r > 0:
                            f.off += r
                    finally:
                        self.fs.iunlock(f.ip)
                if r != len(chunk):
                    raise KernelPanic("short filewrite")
                written += r
            return written
        raise KernelPanic("filewrite")

    def open_pipe(self) -> tuple[OpenFile, OpenFile]:
        """Create a pipe; return its reading end and its writing end."""
        read_end = self.alloc()
        try:
            write_end = self.alloc()
        except OSError:
            self.close(read_end)
            raise
        pipe = Pipe()
        read_end.type = FileType.PIPE
        read_end.readable = True
        read_end.writable = False
        read_end.pipe = pipe
        write_end.type = FileType.PIPE
        write_end.readable = False
        write_end.writable = True
        write_end.pipe = pipe
        return read_end, write_end