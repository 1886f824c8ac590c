"""Inodes, directories and path names on top of the buffer cache and the log.

Code that examines or changes an inode's contents must hold it locked
(``ilock``); ``iget``/``iput`` manage its place in the in-memory inode cache.
Anything that may write to disk must run inside a log transaction.
"""

from __future__ import annotations

import errno
import struct
import threading
from dataclasses import dataclass, field
from typing import Protocol

from .bcache import Buffer, BufferCache, _SleepLock
from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    T_DEV,
    T_DIR,
    DirEntry,
    DiskInode,
    KernelPanic,
    Superblock,
    bitmap_block,
    inode_block,
)
from .log import Log

NINODE = 50
NDEV = 10

_UINT = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


@dataclass(frozen=True)
class Stat:
    """Metadata of one inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


def _empty_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, plus cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_empty_addrs)
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)

    @property
    def locked(self) -> bool:
        """True if the calling thread holds this inode's lock."""
        return self.lock.held()


class _Device(Protocol):
    def read(self, ip: Inode, n: int) -> bytes: ...

    def write(self, ip: Inode, data: bytes) -> int: ...


def skip_elem(path: str) -> tuple[str, str] | None:
    """Split off the first path element.

    Returns ``(name, rest)`` with leading slashes stripped from ``rest``, or
    None if the path holds no element.  Names are cut to DIRSIZ characters.
    """
    path = path.lstrip("/")
    if not path:
        return None
    name, _, rest = path.partition("/")
    return name[:DIRSIZ], rest.lstrip("/")


def _names_equal(a: str, b: str) -> bool:
    return a.encode("utf-8")[:DIRSIZ] == b.encode("utf-8")[:DIRSIZ]


class FileSystem:
    """The file system on one device."""

    def __init__(self, cache: BufferCache, log: Log, dev: int = 1, ninode: int = NINODE):
        if ninode < 1:
            raise ValueError("the inode cache needs at least one entry")
        self.cache = cache
        self.log = log
        self.dev = dev
        self.devices: dict[int, _Device] = {}
        self._icache_lock = threading.Lock()
        self.inodes = [Inode() for _ in range(ninode)]
        buf = cache.read(dev, 1)
        try:
            self.sb = Superblock.unpack(bytes(buf.data))
        finally:
            cache.release(buf)

    # Blocks.

    def _bzero(self, bno: int) -> None:
        buf = self.cache.read(self.dev, bno)
        try:
            buf.data[:] = bytes(BSIZE)
            self.log.write(buf)
        finally:
            self.cache.release(buf)

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            found = None
            buf = self.cache.read(self.dev, bitmap_block(base, self.sb))
            try:
                for bi in range(min(BPB, self.sb.size - base)):
                    mask = 1 << (bi % 8)
                    if not buf.data[bi // 8] & mask:
                        buf.data[bi // 8] |= mask
                        self.log.write(buf)
                        found = base + bi
                        break
            finally:
                self.cache.release(buf)
            if found is not None:
                self._bzero(found)
                return found
        raise KernelPanic("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        buf = self.cache.read(self.dev, bitmap_block(b, self.sb))
        try:
            bi = b % BPB
            mask = 1 << (bi % 8)
            if not buf.data[bi // 8] & mask:
                raise KernelPanic("freeing free block")
            buf.data[bi // 8] &= ~mask & 0xFF
            self.log.write(buf)
        finally:
            self.cache.release(buf)

    # Inodes.

    def _dinode_offset(self, inum: int) -> int:
        return (inum % IPB) * DINODE_SIZE

    def ialloc(self, type: int) -> Inode:
        """Allocate a free on-disk inode of ``type``; return it unlocked and referenced."""
        for inum in range(1, self.sb.ninodes):
            buf = self.cache.read(self.dev, inode_block(inum, self.sb))
            try:
                off = self._dinode_offset(inum)
                din = DiskInode.unpack(bytes(buf.data[off:off + DINODE_SIZE]))
                if din.type == 0:
                    buf.data[off:off + DINODE_SIZE] = DiskInode(type=type).pack()
                    self.log.write(buf)
                    allocated = True
                else:
                    allocated = False
            finally:
                self.cache.release(buf)
            if allocated:
                return self.iget(inum)
        raise KernelPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy the in-memory inode to disk; the caller holds its lock."""
        buf = self.cache.read(ip.dev, inode_block(ip.inum, self.sb))
        try:
            off = self._dinode_offset(ip.inum)
            din = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, ip.addrs)
            buf.data[off:off + DINODE_SIZE] = din.pack()
            self.log.write(buf)
        finally:
            self.cache.release(buf)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum``, neither locked nor read from disk."""
        with self._icache_lock:
            empty = None
            for ip in self.inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise KernelPanic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ``ip``."""
        with self._icache_lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode | None) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        ip.lock.acquire()
        if not ip.valid:
            buf = self.cache.read(ip.dev, inode_block(ip.inum, self.sb))
            try:
                off = self._dinode_offset(ip.inum)
                din = DiskInode.unpack(bytes(buf.data[off:off + DINODE_SIZE]))
            finally:
                self.cache.release(buf)
            ip.type = din.type
            ip.major = din.major
            ip.minor = din.minor
            ip.nlink = din.nlink
            ip.size = din.size
            ip.addrs = list(din.addrs)
            ip.valid = True
            if ip.type == 0:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Inode | None) -> None:
        """Unlock ``ip``."""
        if ip is None or not ip.locked or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip.lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; the last one to an unlinked inode frees it on disk."""
        ip.lock.acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._icache_lock:
                    refs = ip.ref
                if refs == 1:
                    self._itrunc(ip)
                    ip.type = 0
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip.lock.release()
        with self._icache_lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock, then drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            buf = self.cache.read(ip.dev, ip.addrs[NDIRECT])
            try:
                (addr,) = _UINT.unpack_from(buf.data, bn * _UINT.size)
                if addr == 0:
                    addr = self._balloc()
                    _UINT.pack_into(buf.data, bn * _UINT.size, addr)
                    self.log.write(buf)
            finally:
                self.cache.release(buf)
            return addr
        raise KernelPanic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i in range(NDIRECT):
            if ip.addrs[i]:
                self._bfree(ip.addrs[i])
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            buf = self.cache.read(ip.dev, ip.addrs[NDIRECT])
            try:
                entries = _INDIRECT.unpack(bytes(buf.data))
            finally:
                self.cache.release(buf)
            for addr in entries:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _device(self, ip: Inode, op: str) -> _Device:
        device = self.devices.get(ip.major) if 0 <= ip.major < NDEV else None
        if device is None or not callable(getattr(device, op, None)):
            raise OSError(errno.ENODEV, f"no {op} handler for device {ip.major}")
        return device

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off``; reads stop at the end of the file."""
        if ip.type == T_DEV:
            return self._device(ip, "read").read(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise ValueError(f"cannot read {n} bytes at offset {off} of a {ip.size}-byte file")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            buf = self.cache.read(ip.dev, self._bmap(ip, off // BSIZE))
            try:
                start = off % BSIZE
                m = min(n - len(out), BSIZE - start)
                out += buf.data[start:start + m]
            finally:
                self.cache.release(buf)
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off``, growing the file as needed; return bytes written."""
        if ip.type == T_DEV:
            return self._device(ip, "write").write(ip, bytes(data))
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError(f"cannot write at offset {off} of a {ip.size}-byte file")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("file too large")
        view = memoryview(bytes(data))
        while view:
            buf = self.cache.read(ip.dev, self._bmap(ip, off // BSIZE))
            try:
                start = off % BSIZE
                m = min(len(view), BSIZE - start)
                buf.data[start:start + m] = view[:m]
                self.log.write(buf)
            finally:
                self.cache.release(buf)
            view = view[m:]
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in directory ``dp``; return its inode and entry offset."""
        if dp.type != T_DIR:
            raise KernelPanic("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("dirlookup read")
            de = DirEntry.unpack(raw)
            if de.inum and _names_equal(name, de.name):
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry ``(name, inum)`` to directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(errno.EEXIST, "directory entry exists", name)
        off = dp.size
        for candidate in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, candidate, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("dirlink read")
            if DirEntry.unpack(raw).inum == 0:
                off = candidate
                break
        if self.writei(dp, DirEntry(inum, name).pack(), off) != DIRENT_SIZE:
            raise KernelPanic("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None) -> tuple[Inode, str] | None:
        if path.startswith("/"):
            ip = self.iget(ROOTINO)
        elif cwd is None:
            raise ValueError("a relative path needs a current directory")
        else:
            ip = self.idup(cwd)
        name = ""
        while (elem := skip_elem(path)) is not None:
            name, path = elem
            self.ilock(ip)
            if ip.type != T_DIR:
                self.iunlockput(ip)
                return None
            if parent and not path:
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Look up the inode for ``path``; None if there is none."""
        found = self._namex(path, False, cwd)
        return None if found is None else found[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str] | None:
        """Look up the parent directory of ``path`` and the final element's name."""
        return self._namex(path, True, cwd)