"""Shared utilities for Danmaku."""

from danmaku.core.utils.json import read_json, read_json_any, write_json
from danmaku.core.utils.math import clamp, safe_div

__all__ = [
    "clamp",
    "read_json",
    "read_json_any",
    "safe_div",
    "write_json",
]
