"""Helpers for reading values out of raw attribute bundles."""

import math
from typing import Any, Mapping

_MISSING_STRINGS = {"", "nan", "none", "null", "n/a", ".."}

TRUTHY = {"1", "true", "t", "yes", "y"}
FALSY = {"0", "false", "f", "no", "n"}


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.strip().lower() in _MISSING_STRINGS:
        return True
    return False


def get_text(bundle: Mapping[str, Any], *names: str) -> str | None:
    """Return the first non-missing field among ``names`` as a stripped string."""
    for name in names:
        value = bundle.get(name)
        if not is_missing(value):
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            return " ".join(str(value).split())
    return None


def get_raw(bundle: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = bundle.get(name)
        if not is_missing(value):
            return value
    return None


def to_float(value: Any) -> float | None:
    """Parse a finite float; returns None for missing, raises ValueError otherwise."""
    if is_missing(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"boolean is not a number: {value!r}")
    if isinstance(value, str):
        value = value.strip().replace(",", "")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    return number


def to_bool(value: Any, default: bool = False) -> bool:
    if is_missing(value):
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"not a boolean flag: {value!r}")
    text = str(value).strip().lower()
    if text in TRUTHY:
        return True
    if text in FALSY:
        return False
    raise ValueError(f"not a boolean flag: {value!r}")
