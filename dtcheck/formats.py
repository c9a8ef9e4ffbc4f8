"""Guessing input and output formats from file names and contents."""

from __future__ import annotations

import os
import stat

FDT_MAGIC = 0xD00DFEED
DEFAULT_FDT_VERSION = 17

_EXTENSIONS = {".dts": "dts", ".yaml": "yaml", ".dtb": "dtb"}


def is_power_of_2(x: int) -> bool:
    """True if ``x`` is a positive power of two."""
    return x > 0 and (x & (x - 1)) == 0


def guess_type_by_name(fname: str, fallback: str | None) -> str | None:
    """Guess a format from the file name's extension."""
    dot = fname.rfind(".")
    if dot < 0:
        return fallback
    return _EXTENSIONS.get(fname[dot:].lower(), fallback)


def guess_input_format(fname: str, fallback: str | None) -> str | None:
    """Guess an input format: a directory, a blob by its magic, or by name."""
    try:
        st = os.stat(fname)
    except OSError:
        return fallback
    if stat.S_ISDIR(st.st_mode):
        return "fs"
    if not stat.S_ISREG(st.st_mode):
        return fallback
    try:
        with open(fname, "rb") as f:
            magic = f.read(4)
    except OSError:
        return fallback
    if len(magic) != 4:
        return fallback
    if int.from_bytes(magic, "big") == FDT_MAGIC:
        return "dtb"
    return guess_type_by_name(fname, fallback)