# xvfs

`xvfs` is a compact model of a classic Unix-style teaching file system in
plain Python, with no runtime dependencies. It goes from a raw disk image up
to open files and pipes, and comes with a few small text tools.

## What is in it

- **`xvfs.layout`** – the on-disk format. Constants such as `BSIZE` (512),
  `NDIRECT`, `DIRSIZ` and the inode types `T_DIR`, `T_FILE`, `T_DEV`; the
  records `Superblock`, `DiskInode` and `DirEntry`, each with `pack()` and
  the class method `unpack()` (little-endian); `inode_block()` and
  `bitmap_block()` to locate an inode or a free-map bit. Fatal consistency
  errors anywhere in the package raise `KernelPanic`.
- **`xvfs.mkfs`** – `ImageBuilder(size=1000, ninodes=200, nlog=30)` lays out
  boot block, superblock, log, inode blocks, free bitmap and data blocks and
  creates the root directory with `.` and `..`. `ialloc()`, `iappend()` and
  `add_file(name, data)` (a leading `_` in the name is dropped, `/` is
  refused) fill it; `finish()` rounds the root directory size up to a whole
  block, writes the bitmap and returns the image bytes. `build_image(files)`
  does all of it from `(name, data)` pairs.
- **`xvfs.disk`** – `MemoryDisk(image, dev=1)` keeps the image in memory;
  `sync(buf)` writes a dirty buffer to it or fills an invalid one from it.
- **`xvfs.bcache`** – `BufferCache(disk, nbuf=30)` hands out locked `Buffer`
  objects with `read(dev, blockno)`, writes them with `write(buf)` and gives
  them back with `release(buf)`; unused buffers are recycled least recently
  used first.
- **`xvfs.log`** – `Log(cache, dev, sb)` is a redo log. `begin_op()` /
  `end_op()`, or the `transaction()` context manager, bracket updates;
  `write(buf)` records a modified buffer; the last operation to end commits.
  A committed log is replayed by `recover()`, which runs on construction.
- **`xvfs.fs`** – `FileSystem(cache, log, dev=1, ninode=50)`: inode
  allocation and caching (`ialloc`, `iget`, `idup`, `ilock`, `iunlock`,
  `iput`, `iunlockput`, `iupdate`), contents (`readi`, `writei`), metadata
  (`stati` returns a `Stat`), directories (`dirlookup`, `dirlink`) and paths
  (`namei`, `nameiparent`; `skip_elem` splits off one path element). Device
  inodes are served by objects placed in `FileSystem.devices` by major
  number.
- **`xvfs.file`** – `FileTable(fs, nfile=100)` manages reference-counted
  `OpenFile` entries of each `FileType` (`alloc`, `dup`, `close`, `stat`,
  `read`, `write`). Inode writes are split so no transaction outgrows the
  log. `open_pipe()` returns the reading and writing ends of a 512-byte
  `Pipe`; writing to a full pipe with no reader raises `BrokenPipeError`.
- **`xvfs.console`** – `Console` is a line-editing input buffer. `feed()`
  takes typed characters, `read(n)` returns committed input (at most one
  line, `^D` as end of file), `write()` echoes, and `output` holds
  everything echoed. It keeps the last ten lines: `ESC [ A` / `ESC [ B` walk
  through them, tab completes from them, `^R` inserts the last five. `^C`
  pressed twice copies a span counted with the left-arrow key and `^V`
  pastes it; `^U` erases the line; `^P` calls `on_procdump` if set.
- **`xvfs.keyboard`** – `Keyboard().getc(scan_code)` turns PC scan codes
  into character codes, tracking shift, control, alt and the lock keys.
- **Small tools** – `xvfs.tools` has `echo`, `cat`, `fmtname` and
  `ls(fs, path)` (lines of `name type inum size`); `xvfs.grep` has `match`
  for patterns with `^ . * $` and a line-by-line `grep`; `xvfs.printf` has
  `sprintf` for `%d %x %p %s %c %%` and `format_int`; `xvfs.braces` has
  `is_balanced`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Commands

Build an image from host files; each file lands in the root directory,
named after its last path component with a leading `_` dropped:

```
xvfs-mkfs fs.img README _cat _ls
```

Print the lines of files, or of standard input, that match a pattern. Only
newline-terminated lines are considered:

```
xvfs-grep '^ab*c$' notes.txt
```

Check whether the braces in a string are balanced. The verdict, `Right` or
`Wrong`, is written over the start of `Result.txt` in the current directory
(the file is created if missing, but not truncated):

```
xvfs-braces '{a{b}c}'
```

## Library use

```python
from xvfs.grep import match
from xvfs.braces import is_balanced

match("^ab*c$", "abbbc")   # True
match("x.z", "--xyz--")    # True
is_balanced("{{}}")        # True
is_balanced("}{")          # False
```

Assembling the stack and reading a file back:

```python
from xvfs.bcache import BufferCache
from xvfs.disk import MemoryDisk
from xvfs.fs import FileSystem
from xvfs.layout import BSIZE, Superblock
from xvfs.log import Log
from xvfs.mkfs import build_image
from xvfs.tools import ls

image = build_image([("README", b"hello\n")])
cache = BufferCache(MemoryDisk(image, dev=1))
sb = Superblock.unpack(image[BSIZE:2 * BSIZE])
fs = FileSystem(cache, Log(cache, 1, sb), dev=1)

with fs.log.transaction():
    ip = fs.namei("/README")
    fs.ilock(ip)
    data = fs.readi(ip, 0, ip.size)   # b"hello\n"
    fs.iunlockput(ip)

print("\n".join(ls(fs, "/")))
```

## What it does not do

- There are no processes or system calls: nothing opens a path into a
  `FileTable` entry, and there is no create, unlink, mkdir or link
  operation; new inodes and entries are made with `ialloc` and `dirlink`
  directly.
- The only disk is `MemoryDisk`; changes stay in its `image` attribute
  until you save it yourself.
- `ImageBuilder` makes a flat root directory only.
- `Console` and `Keyboard` are not attached to a terminal; characters and
  scan codes are fed in by the caller.