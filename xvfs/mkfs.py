"""Build a file-system image holding a flat root directory of files."""

from __future__ import annotations

import struct
import sys
from pathlib import Path
from typing import Iterable, Sequence

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    T_DIR,
    T_FILE,
    DirEntry,
    DiskInode,
    Superblock,
    inode_block,
)

FSSIZE = 1000
LOGSIZE = 30
NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image in memory: superblock, root directory, files."""

    def __init__(self, size: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE):
        self.size = size
        self.ninodes = ninodes
        self.nlog = nlog
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.sb = Superblock(
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._finished = False
        self._image = bytearray(size * BSIZE)
        self._wsect(1, self.sb.pack())

        self.root = self.ialloc(T_DIR)
        if self.root != ROOTINO:
            raise RuntimeError("root directory did not get the root inode number")
        for name in (".", ".."):
            self.iappend(self.root, DirEntry(self.root, name).pack())

    def _check_sector(self, sec: int) -> None:
        if not 0 <= sec < self.size:
            raise ValueError(f"sector {sec} outside image")

    def _wsect(self, sec: int, data: bytes) -> None:
        self._check_sector(sec)
        self._image[sec * BSIZE:(sec + 1) * BSIZE] = bytes(data).ljust(BSIZE, b"\0")[:BSIZE]

    def _rsect(self, sec: int) -> bytes:
        self._check_sector(sec)
        return bytes(self._image[sec * BSIZE:(sec + 1) * BSIZE])

    def _inode_offset(self, inum: int) -> int:
        return inode_block(inum, self.sb) * BSIZE + (inum % IPB) * DINODE_SIZE

    def _rinode(self, inum: int) -> DiskInode:
        start = self._inode_offset(inum)
        return DiskInode.unpack(bytes(self._image[start:start + DINODE_SIZE]))

    def _winode(self, inum: int, din: DiskInode) -> None:
        start = self._inode_offset(inum)
        self._image[start:start + DINODE_SIZE] = din.pack()

    def _alloc_block(self) -> int:
        if self.freeblock >= self.size:
            raise ValueError("image out of data blocks")
        block = self.freeblock
        self.freeblock += 1
        return block

    def ialloc(self, type: int) -> int:
        """Allocate the next inode with the given type and one link."""
        if self.freeinode >= self.ninodes:
            raise ValueError("image out of inodes")
        inum = self.freeinode
        self.freeinode += 1
        self._winode(inum, DiskInode(type=type, nlink=1))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the end of inode ``inum``."""
        din = self._rinode(inum)
        off = din.size
        view = memoryview(bytes(data))
        while view:
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                block = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._alloc_block()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                block = indirect[fbn - NDIRECT]
            start = off - fbn * BSIZE
            n1 = min(len(view), BSIZE - start)
            pos = block * BSIZE + start
            self._image[pos:pos + n1] = view[:n1]
            view = view[n1:]
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data: bytes) -> int:
        """Add a file to the root directory; a leading underscore is dropped."""
        if "/" in name:
            raise ValueError(f"file name may not contain '/': {name!r}")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(T_FILE)
        self.iappend(self.root, DirEntry(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def _balloc(self, used: int) -> None:
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        for block in range(used):
            bitmap[block // 8] |= 1 << (block % 8)
        self._wsect(self.sb.bmapstart, bitmap)

    def finish(self) -> bytes:
        """Round the root directory size up, write the bitmap, return the image."""
        if self._finished:
            raise RuntimeError("image already finished")
        din = self._rinode(self.root)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.root, din)
        self._balloc(self.freeblock)
        self._finished = True
        return bytes(self._image)


def build_image(
    files: Iterable[tuple[str, bytes]],
    size: int = FSSIZE,
    ninodes: int = NINODES,
    nlog: int = LOGSIZE,
) -> bytes:
    """Build an image from ``(name, data)`` pairs."""
    builder = ImageBuilder(size, ninodes, nlog)
    for name, data in files:
        builder.add_file(name, data)
    return builder.finish()


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *inputs = args

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.size}"
    )
    for path in inputs:
        try:
            data = Path(path).read_bytes()
        except OSError as err:
            print(f"{path}: {err.strerror}", file=sys.stderr)
            return 1
        try:
            builder.add_file(Path(path).name, data)
        except ValueError as err:
            print(f"{path}: {err}", file=sys.stderr)
            return 1

    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        image = builder.finish()
    except ValueError as err:
        print(f"mkfs: {err}", file=sys.stderr)
        return 1
    try:
        Path(image_path).write_bytes(image)
    except OSError as err:
        print(f"{image_path}: {err.strerror}", file=sys.stderr)
        return 1
    return 0