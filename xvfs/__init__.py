"""A small Unix-style teaching file system: image builder, cache, log, inodes, files and tools."""

__version__ = "0.1.0"