"""Utility modules for expressionkit."""

from expressionkit.utils.fileio import (
    atomic_open,
    atomic_write_frame,
    atomic_write_json,
)

__all__ = [
    'atomic_open',
    'atomic_write_frame',
    'atomic_write_json',
]
