import pytest

from xvfs.bcache import BufferCache
from xvfs.disk import MemoryDisk
from xvfs.fs import FileSystem, Inode, skip_elem
from xvfs.layout import (
    BSIZE,
    DIRENT_SIZE,
    NDIRECT,
    ROOTINO,
    T_DEV,
    T_DIR,
    T_FILE,
    KernelPanic,
    Superblock,
)
from xvfs.log import Log
from xvfs.mkfs import build_image

README = b"a small readme\n"


def _mount(image):
    disk = MemoryDisk(image, dev=1)
    cache = BufferCache(disk)
    sb = Superblock.unpack(bytes(image[BSIZE:2 * BSIZE]))
    log = Log(cache, 1, sb)
    return disk, log, FileSystem(cache, log, 1)


@pytest.fixture
def mounted():
    return _mount(build_image([("README", README)]))


def _new_file(fs, log, name, data):
    with log.transaction():
        ip = fs.ialloc(T_FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.writei(ip, data, 0)
        root = fs.namei("/")
        fs.ilock(root)
        fs.dirlink(root, name, ip.inum)
        fs.iunlockput(root)
        inum = ip.inum
        fs.iunlockput(ip)
    return inum


@pytest.mark.parametrize(
    "path, expected",
    [
        ("a/bb/c", ("a", "bb/c")),
        ("///a//bb", ("a", "bb")),
        ("a", ("a", "")),
        ("", None),
        ("////", None),
    ],
)
def test_skip_elem(path, expected):
    assert skip_elem(path) == expected


def test_root_is_directory(mounted):
    _, _, fs = mounted
    root = fs.namei("/")
    fs.ilock(root)
    assert root.inum == ROOTINO
    assert root.type == T_DIR
    fs.iunlock(root)


def test_read_file_from_image(mounted):
    _, _, fs = mounted
    ip = fs.namei("/README")
    fs.ilock(ip)
    assert fs.readi(ip, 0, 1000) == README
    assert fs.readi(ip, 2, 5) == README[2:7]
    st = fs.stati(ip)
    assert (st.type, st.size, st.ino) == (T_FILE, len(README), ip.inum)
    fs.iunlock(ip)


def test_dot_entries(mounted):
    _, _, fs = mounted
    root = fs.namei("/")
    fs.ilock(root)
    dot, off = fs.dirlookup(root, ".")
    dotdot, off2 = fs.dirlookup(root, "..")
    assert (dot.inum, off) == (ROOTINO, 0)
    assert (dotdot.inum, off2) == (ROOTINO, DIRENT_SIZE)
    assert fs.dirlookup(root, "missing") is None
    fs.iunlock(root)


def test_missing_paths(mounted):
    _, _, fs = mounted
    assert fs.namei("/nothing") is None
    assert fs.namei("/README/inside") is None


def test_iget_shares_entries(mounted):
    _, _, fs = mounted
    a = fs.iget(ROOTINO)
    b = fs.iget(ROOTINO)
    assert a is b
    assert a.ref == 2


def test_nameiparent(mounted):
    _, _, fs = mounted
    parent, name = fs.nameiparent("/newfile")
    assert parent.inum == ROOTINO
    assert name == "newfile"
    assert fs.nameiparent("/") is None


def test_relative_path_uses_cwd(mounted):
    _, _, fs = mounted
    root = fs.namei("/")
    ip = fs.namei("README", cwd=root)
    assert ip is fs.namei("/README")
    with pytest.raises(ValueError):
        fs.namei("README")


def test_create_and_persist(mounted):
    disk, log, fs = mounted
    inum = _new_file(fs, log, "hello", b"hello world")
    assert fs.namei("/hello").inum == inum

    _, _, fs2 = _mount(bytes(disk.image))
    ip = fs2.namei("/hello")
    fs2.ilock(ip)
    assert ip.inum == inum
    assert fs2.readi(ip, 0, 100) == b"hello world"
    fs2.iunlock(ip)


def test_dirlink_duplicate(mounted):
    _, log, fs = mounted
    root = fs.namei("/")
    fs.ilock(root)
    with log.transaction():
        with pytest.raises(FileExistsError):
            fs.dirlink(root, "README", ROOTINO)
    fs.iunlock(root)


def test_offsets_out_of_range(mounted):
    _, log, fs = mounted
    ip = fs.namei("/README")
    fs.ilock(ip)
    with pytest.raises(ValueError):
        fs.readi(ip, ip.size + 1, 1)
    with log.transaction():
        with pytest.raises(ValueError):
            fs.writei(ip, b"x", ip.size + 1)
    assert fs.readi(ip, ip.size, 10) == b""
    fs.iunlock(ip)


def test_indirect_blocks(mounted):
    _, log, fs = mounted
    with log.transaction():
        ip = fs.ialloc(T_FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        fs.iunlock(ip)
    chunks = [bytes([i]) * BSIZE for i in range(NDIRECT + 2)]
    for chunk in chunks:
        with log.transaction():
            fs.ilock(ip)
            assert fs.writei(ip, chunk, ip.size) == BSIZE
            fs.iunlock(ip)
    fs.ilock(ip)
    whole = b"".join(chunks)
    assert ip.size == len(whole)
    assert ip.addrs[NDIRECT] != 0
    assert fs.readi(ip, 0, len(whole)) == whole
    fs.iunlock(ip)


def test_iput_frees_unlinked_inode(mounted):
    _, log, fs = mounted
    with log.transaction():
        ip = fs.ialloc(T_FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.writei(ip, b"data", 0)
        block, inum = ip.addrs[0], ip.inum
        ip.nlink = 0
        fs.iupdate(ip)
        fs.iunlockput(ip)
    with log.transaction():
        again = fs.ialloc(T_FILE)
        fs.ilock(again)
        again.nlink = 1
        fs.writei(again, b"more", 0)
        assert again.inum == inum
        assert again.addrs[0] == block
        fs.iunlock(again)


def test_lock_misuse_panics(mounted):
    _, _, fs = mounted
    with pytest.raises(KernelPanic):
        fs.ilock(Inode())
    with pytest.raises(KernelPanic):
        fs.ilock(None)
    root = fs.namei("/")
    with pytest.raises(KernelPanic):
        fs.iunlock(root)


def test_dirlookup_on_file_panics(mounted):
    _, _, fs = mounted
    ip = fs.namei("/README")
    fs.ilock(ip)
    with pytest.raises(KernelPanic):
        fs.dirlookup(ip, "x")
    fs.iunlock(ip)


class _Device:
    def __init__(self):
        self.written = b""

    def read(self, ip, n):
        return b"z" * n

    def write(self, ip, data):
        self.written += data
        return len(data)


def test_device_inode(mounted):
    _, log, fs = mounted
    with log.transaction():
        ip = fs.ialloc(T_DEV)
        fs.ilock(ip)
        ip.major = 1
        ip.nlink = 1
        fs.iupdate(ip)
    with pytest.raises(OSError):
        fs.readi(ip, 0, 3)
    device = _Device()
    fs.devices[1] = device
    assert fs.readi(ip, 0, 3) == b"zzz"
    assert fs.writei(ip, b"out", 0) == 3
    assert device.written == b"out"
    fs.iunlock(ip)