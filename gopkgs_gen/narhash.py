"""Content hashing of module source trees.

A tree is serialised as a Nix archive (NAR): file names, contents, the
executable bit and symlink targets, with directory entries in byte order.
Timestamps, owners and other mode bits never reach the stream, so two equal
trees hash the same wherever they live. The sha256 of that stream is printed
in Nix base32, which is what `fetchGoModule` expects.
"""

from __future__ import annotations

import hashlib
import os
import stat
import struct
from pathlib import Path
from typing import Callable

from .errors import MissingSourceDirError

NAR_MAGIC = b"nix-archive-1"
NIX_BASE32_ALPHABET = "0123456789abcdfghijklmnpqrsvwxyz"

_CHUNK = 1024 * 1024

Sink = Callable[[bytes], object]


def _write_str(sink: Sink, data: bytes) -> None:
    sink(struct.pack("<Q", len(data)))
    sink(data)
    pad = -len(data) % 8
    if pad:
        sink(b"\0" * pad)


def _write_file_contents(sink: Sink, path: str, size: int) -> None:
    sink(struct.pack("<Q", size))
    remaining = size
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            remaining -= len(chunk)
            if remaining < 0:
                break
            sink(chunk)
    if remaining != 0:
        raise OSError(f"{path} changed size while being hashed")
    pad = -size % 8
    if pad:
        sink(b"\0" * pad)


def _dump(sink: Sink, path: str) -> None:
    st = os.lstat(path)
    _write_str(sink, b"(")
    if stat.S_ISREG(st.st_mode):
        _write_str(sink, b"type")
        _write_str(sink, b"regular")
        if st.st_mode & stat.S_IXUSR:
            _write_str(sink, b"executable")
            _write_str(sink, b"")
        _write_str(sink, b"contents")
        _write_file_contents(sink, path, st.st_size)
    elif stat.S_ISLNK(st.st_mode):
        _write_str(sink, b"type")
        _write_str(sink, b"symlink")
        _write_str(sink, b"target")
        _write_str(sink, os.fsencode(os.readlink(path)))
    elif stat.S_ISDIR(st.st_mode):
        _write_str(sink, b"type")
        _write_str(sink, b"directory")
        for name in sorted(os.fsencode(n) for n in os.listdir(path)):
            _write_str(sink, b"entry")
            _write_str(sink, b"(")
            _write_str(sink, b"name")
            _write_str(sink, name)
            _write_str(sink, b"node")
            _dump(sink, os.path.join(path, os.fsdecode(name)))
            _write_str(sink, b")")
    else:
        raise OSError(f"unsupported file type in {path}: {stat.filemode(st.st_mode)}")
    _write_str(sink, b")")


def dump_path(sink: Sink, path: Path | str) -> None:
    """Stream the NAR serialisation of `path` into `sink`."""
    _write_str(sink, NAR_MAGIC)
    _dump(sink, os.fspath(path))


def nix_base32(data: bytes) -> str:
    """Encode bytes the way Nix prints hashes: no padding, least significant first."""
    out_len = (len(data) * 8 - 1) // 5 + 1 if data else 0
    chars = []
    for n in range(out_len - 1, -1, -1):
        b = n * 5
        i, j = divmod(b, 8)
        c = data[i] >> j
        if i + 1 < len(data):
            c |= data[i + 1] << (8 - j)
        chars.append(NIX_BASE32_ALPHABET[c & 0x1F])
    return "".join(chars)


def nar_sha256(path: Path | str) -> str:
    h = hashlib.sha256()
    dump_path(h.update, path)
    return nix_base32(h.digest())


def module_sha256(module_path: str, source_dir: str) -> str:
    if not source_dir:
        raise MissingSourceDirError(module_path)
    return nar_sha256(source_dir)
