"""A disk whose blocks live in memory rather than on a device."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .layout import BSIZE, KernelPanic

if TYPE_CHECKING:
    from .bcache import Buffer


class MemoryDisk:
    """Serves block reads and writes for one device from an in-memory image."""

    def __init__(self, image: bytes | bytearray, dev: int = 1):
        self.image = bytearray(image)
        self.dev = dev
        self.nblocks = len(self.image) // BSIZE

    def sync(self, buf: "Buffer") -> None:
        """Write a dirty buffer to the image, or fill an invalid one from it.

        Afterwards the buffer is valid and clean.
        """
        if not buf.locked:
            raise KernelPanic("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise KernelPanic("iderw: nothing to do")
        if buf.dev != self.dev:
            raise KernelPanic(f"iderw: request not for disk {self.dev}")
        if not 0 <= buf.blockno < self.nblocks:
            raise KernelPanic("iderw: block out of range")

        start = buf.blockno * BSIZE
        if buf.dirty:
            buf.dirty = False
            self.image[start:start + BSIZE] = buf.data
        else:
            buf.data[:] = self.image[start:start + BSIZE]
        buf.valid = True