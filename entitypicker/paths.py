"""Safe nested-field reads on arbitrary records."""

from typing import Any, Mapping, Sequence


class _Missing:
    """Sentinel for an absent value (distinct from an explicit None)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def _is_index(segment: str) -> bool:
    return segment.isdigit() and segment.isascii()


def get_path(record: Any, path: str, default: Any = MISSING) -> Any:
    """
    Read a dot-separated path from a record.

    A segment made of digits indexes a list when the current value is a
    list; otherwise it is used as a mapping key. Any failure along the way
    returns ``default`` instead of raising.

    Example:
        get_path(entity, "relations.0.targetRef")
    """
    if not isinstance(path, str) or not path:
        return default

    current = record
    for segment in path.split("."):
        if current is None or current is MISSING:
            return default
        if isinstance(current, Mapping):
            if segment not in current:
                return default
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            if not _is_index(segment):
                return default
            i = int(segment)
            if i >= len(current):
                return default
            current = current[i]
        else:
            return default
    return current


def has_path(record: Any, path: str) -> bool:
    """True when the path resolves to a value other than None."""
    value = get_path(record, path)
    return value is not MISSING and value is not None
