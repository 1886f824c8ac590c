import pytest

from xvfs.bcache import Buffer, BufferCache
from xvfs.disk import MemoryDisk
from xvfs.layout import BSIZE, KernelPanic


def _disk(nblocks=8):
    return MemoryDisk(b"".join(bytes([i + 1]) * BSIZE for i in range(nblocks)))


def test_read_returns_block_contents_locked():
    disk = _disk()
    cache = BufferCache(disk)
    buf = cache.read(1, 3)
    assert bytes(buf.data) == disk.image[3 * BSIZE:4 * BSIZE]
    assert buf.locked
    assert buf.valid
    assert buf.refcnt == 1


def test_read_after_release_is_served_from_cache():
    disk = _disk()
    cache = BufferCache(disk)
    first = cache.read(1, 2)
    original = bytes(first.data)
    cache.release(first)
    disk.image[2 * BSIZE:3 * BSIZE] = b"x" * BSIZE
    second = cache.read(1, 2)
    assert second is first
    assert bytes(second.data) == original


def test_release_unlocks_and_drops_reference():
    cache = BufferCache(_disk())
    buf = cache.read(1, 1)
    cache.release(buf)
    assert not buf.locked
    assert buf.refcnt == 0


def test_write_reaches_disk_and_leaves_buffer_clean():
    disk = _disk()
    cache = BufferCache(disk)
    buf = cache.read(1, 4)
    buf.data[:5] = b"hello"
    cache.write(buf)
    cache.release(buf)
    assert disk.image[4 * BSIZE:4 * BSIZE + 5] == b"hello"
    assert not buf.dirty


def test_write_without_holding_is_an_error():
    cache = BufferCache(_disk())
    buf = cache.read(1, 0)
    cache.release(buf)
    with pytest.raises(KernelPanic, match="bwrite"):
        cache.write(buf)


def test_release_without_holding_is_an_error():
    cache = BufferCache(_disk())
    with pytest.raises(KernelPanic, match="brelse"):
        cache.release(Buffer(dev=1, blockno=0))


def test_runs_out_of_buffers_when_all_held():
    cache = BufferCache(_disk(), nbuf=2)
    cache.read(1, 0)
    cache.read(1, 1)
    with pytest.raises(KernelPanic, match="no buffers"):
        cache.read(1, 2)


def test_least_recently_used_buffer_is_recycled():
    cache = BufferCache(_disk(), nbuf=2)
    a = cache.read(1, 0)
    cache.release(a)
    b = cache.read(1, 1)
    cache.release(b)
    c = cache.read(1, 2)
    assert c is a
    assert (c.dev, c.blockno) == (1, 2)
    cache.release(c)
    again = cache.read(1, 1)
    assert again is b


def test_dirty_buffer_is_not_recycled():
    cache = BufferCache(_disk(), nbuf=1)
    buf = cache.read(1, 0)
    buf.dirty = True
    cache.release(buf)
    with pytest.raises(KernelPanic, match="no buffers"):
        cache.read(1, 1)


def test_recycled_buffer_reads_new_block():
    disk = _disk()
    cache = BufferCache(disk, nbuf=1)
    buf = cache.read(1, 0)
    cache.release(buf)
    other = cache.read(1, 5)
    assert bytes(other.data) == disk.image[5 * BSIZE:6 * BSIZE]


def test_needs_at_least_one_buffer():
    with pytest.raises(ValueError):
        BufferCache(_disk(), nbuf=0)