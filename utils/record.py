"""Utility helpers for safe record access."""

import math


def read_field(obj, key, default=None):
    """Safely read a field from mapping- or index-like objects.

    Args:
        obj: Mapping-like object (``RealDictRow``), sequence, or any object
            supporting ``get`` or ``__getitem__``.
        key: Key/index to read.
        default: Value to return when the key is not present or the object is
            ``None``.
    """
    if obj is None:
        return default
    if hasattr(obj, "get"):
        return obj.get(key, default)
    try:
        return obj[key]
    except (KeyError, IndexError, TypeError):
        return default


def read_optional_float(obj, key):
    """Read a nullable numeric column as ``float`` or ``None``.

    Non-numeric and non-finite values are treated as missing.
    """
    value = read_field(obj, key)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def read_text(obj, key, default=""):
    value = read_field(obj, key)
    if value is None:
        return default
    return str(value).strip()
