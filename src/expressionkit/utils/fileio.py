"""
Atomic file-write utilities.

Output is written to a temporary file in the destination directory and moved
into place with ``os.replace()``, so an interrupted write never leaves a
truncated CSV or JSON file behind.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from typing import Any, Iterator, TextIO

import pandas as pd

__all__ = ['atomic_write_json', 'atomic_write_frame', 'atomic_open']


@contextlib.contextmanager
def atomic_open(path: str | os.PathLike, *, newline: str | None = None) -> Iterator[TextIO]:
    """Yield a text handle whose content replaces *path* only on success."""
    path = os.fspath(path)
    dir_path = os.path.dirname(path) or "."
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w", dir=dir_path, suffix=".tmp", delete=False, newline=newline
        ) as tmp:
            tmp_path = tmp.name
            yield tmp
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_write_json(path: str | os.PathLike, data: Any, *, indent: int = 2) -> None:
    """Write *data* as JSON atomically."""
    with atomic_open(path) as handle:
        json.dump(data, handle, indent=indent)


def atomic_write_frame(path: str | os.PathLike, frame: pd.DataFrame, *, index: bool = True) -> None:
    """Write *frame* as CSV atomically."""
    with atomic_open(path, newline="") as handle:
        frame.to_csv(handle, index=index)
