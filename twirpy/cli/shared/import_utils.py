"""Resolve `module:attribute` targets given on the command line."""

from __future__ import annotations

import importlib
from typing import Any


def load_target(target: str) -> Any:
    """Import `package.module:attr` (dotted attribute paths allowed)."""
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise ValueError(f"expected 'module:attribute', got {target!r}")
    obj: Any = importlib.import_module(module_name)
    for part in attr_path.split("."):
        obj = getattr(obj, part)
    return obj
