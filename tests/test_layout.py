import pytest

from xvfs.layout import (
    BPB,
    BSIZE,
    DIRSIZ,
    IPB,
    NDIRECT,
    DirEntry,
    DiskInode,
    Superblock,
    bitmap_block,
    inode_block,
)


def _sb():
    return Superblock(
        size=1000, nblocks=941, ninodes=200, nlog=30, logstart=2, inodestart=32, bmapstart=58
    )


def test_superblock_round_trip():
    sb = _sb()
    assert Superblock.unpack(sb.pack()) == sb


def test_superblock_unpack_from_whole_block():
    sb = _sb()
    block = sb.pack().ljust(BSIZE, b"\0")
    assert Superblock.unpack(block) == sb


def test_superblock_truncated_raises():
    with pytest.raises(ValueError):
        Superblock.unpack(b"\0\0\0")


def test_superblock_little_endian():
    sb = Superblock(size=1)
    assert sb.pack()[:4] == b"\x01\x00\x00\x00"


def test_dinode_round_trip():
    addrs = list(range(1, NDIRECT + 2))
    din = DiskInode(type=2, major=1, minor=3, nlink=1, size=4000, addrs=addrs)
    back = DiskInode.unpack(din.pack())
    assert back == din
    assert back.addrs == addrs


def test_dinodes_fill_block_exactly():
    assert len(DiskInode().pack()) * IPB == BSIZE


def test_dinode_signed_fields():
    din = DiskInode(type=-1, nlink=-2)
    back = DiskInode.unpack(din.pack())
    assert (back.type, back.nlink) == (-1, -2)


def test_dinode_wrong_addr_count():
    with pytest.raises(ValueError):
        DiskInode(addrs=[1, 2])


def test_dirent_round_trip():
    de = DirEntry(inum=7, name="README")
    assert DirEntry.unpack(de.pack()) == de


def test_dirents_fill_block_exactly():
    size = len(DirEntry(1, "x").pack())
    assert BSIZE % size == 0


def test_dirent_name_truncated():
    de = DirEntry(inum=3, name="a" * (DIRSIZ + 6))
    assert DirEntry.unpack(de.pack()).name == "a" * DIRSIZ


def test_dirent_name_exactly_dirsiz():
    name = "b" * DIRSIZ
    assert DirEntry.unpack(DirEntry(4, name).pack()).name == name


def test_free_dirent():
    de = DirEntry.unpack(bytes(len(DirEntry().pack())))
    assert de == DirEntry(0, "")


def test_inode_block():
    sb = _sb()
    assert inode_block(0, sb) == sb.inodestart
    assert inode_block(IPB - 1, sb) == sb.inodestart
    assert inode_block(IPB, sb) == sb.inodestart + 1


def test_bitmap_block():
    sb = _sb()
    assert bitmap_block(0, sb) == sb.bmapstart
    assert bitmap_block(BPB - 1, sb) == sb.bmapstart
    assert bitmap_block(BPB, sb) == sb.bmapstart + 1