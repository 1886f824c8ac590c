"""Small user tools: echo, cat and ls."""

from __future__ import annotations

import errno
from typing import IO, Iterable

from .fs import FileSystem, Inode, Stat
from .layout import DIRENT_SIZE, DIRSIZ, ROOTINO, T_DIR, T_FILE, DirEntry

_CHUNK = 512
_PATH_MAX = 512


def echo(args: Iterable[str]) -> str:
    """Join the arguments with spaces and end the line."""
    args = list(args)
    return " ".join(args) + "\n" if args else ""


def cat(streams: Iterable[IO[bytes]], out: IO[bytes]) -> None:
    """Copy every stream in turn to ``out``."""
    for stream in streams:
        while True:
            chunk = stream.read(_CHUNK)
            if not chunk:
                break
            written = out.write(chunk)
            if written is not None and written != len(chunk):
                raise OSError(errno.EIO, "cat: write error")


def fmtname(path: str) -> str:
    """The last path element, blank-padded to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st: Stat) -> str:
    return f"{fmtname(path)} {st.type} {st.ino} {st.size}"


def _stat_path(fs: FileSystem, path: str, cwd: Inode) -> Stat | None:
    ip = fs.namei(path, cwd)
    if ip is None:
        return None
    fs.ilock(ip)
    try:
        return fs.stati(ip)
    finally:
        fs.iunlockput(ip)


def _dir_entries(fs: FileSystem, dp: Inode) -> list[DirEntry]:
    return [
        DirEntry.unpack(fs.readi(dp, off, DIRENT_SIZE))
        for off in range(0, dp.size - DIRENT_SIZE + 1, DIRENT_SIZE)
    ]


def _ls(fs: FileSystem, path: str, cwd: Inode) -> list[str]:
    ip = fs.namei(path, cwd)
    if ip is None:
        raise FileNotFoundError(errno.ENOENT, "ls: cannot open", path)
    fs.ilock(ip)
    try:
        st = fs.stati(ip)
        entries = _dir_entries(fs, ip) if st.type == T_DIR else []
    finally:
        fs.iunlockput(ip)

    if st.type == T_FILE:
        return [_line(path, st)]
    if st.type != T_DIR:
        return []
    if len(path) + 1 + DIRSIZ + 1 > _PATH_MAX:
        return ["ls: path too long"]
    lines = []
    for de in entries:
        if de.inum == 0:
            continue
        child = f"{path}/{de.name}"
        child_st = _stat_path(fs, child, cwd)
        if child_st is None:
            lines.append(f"ls: cannot stat {child}")
        else:
            lines.append(_line(child, child_st))
    return lines


def ls(fs: FileSystem, path: str = ".") -> list[str]:
    """List a file, or each entry of a directory, as ``name type inum size`` lines.

    Relative paths are taken from the root directory.
    """
    with fs.log.transaction():
        root = fs.iget(ROOTINO)
        try:
            return _ls(fs, path, root)
        finally:
            fs.iput(root)