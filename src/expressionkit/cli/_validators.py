"""Shared argparse type validators for CLI parameter checking."""

from __future__ import annotations

import argparse


def _non_negative_int(value: str) -> int:
    """argparse type for integers >= 0 (e.g., mapping quality)."""
    ivalue = int(value)
    if ivalue < 0:
        raise argparse.ArgumentTypeError(f"{value} is not a non-negative integer")
    return ivalue


def _positive_float(value: str) -> float:
    """argparse type for positive floats (> 0)."""
    fvalue = float(value)
    if fvalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive float")
    return fvalue


def _key_value(value: str) -> tuple[str, str]:
    """argparse type for COLUMN=VALUE filters."""
    if '=' not in value:
        raise argparse.ArgumentTypeError(f"{value!r} is not of the form COLUMN=VALUE")
    key, _, val = value.partition('=')
    if not key:
        raise argparse.ArgumentTypeError(f"{value!r} has an empty column name")
    return key, val
