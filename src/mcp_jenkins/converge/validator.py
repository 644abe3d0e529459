"""Named validators applied once when a desired-state record is built.

Each validator takes the raw value and the field name and either returns the
normalized value or raises ``InvalidConfig``.
"""
import os
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Mapping, Optional, TypeVar

from .errors import ConvergeError, InvalidConfig

E = TypeVar("E", bound=Enum)


@contextmanager
def validating(kind: Optional[str], name: Optional[str]) -> Iterator[None]:
    """Attach resource identity to any ``ConvergeError`` raised inside."""
    try:
        yield
    except ConvergeError as e:
        if e.kind is None:
            e.kind = kind
        if e.name is None:
            e.name = name
        raise


def string(value: Any, field: str) -> str:
    """Require a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfig(f"{field} must be a non-empty string, got {value!r}")
    return value


def optional_string(value: Any, field: str) -> Optional[str]:
    """Allow None or any string (including empty)."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidConfig(f"{field} must be a string, got {type(value).__name__}")
    return value


def config_path(value: Any, field: str) -> Optional[str]:
    """Allow None or a non-empty path string; ``~`` is expanded."""
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfig(f"{field} must be a file path, got {value!r}")
    return os.path.expanduser(value)


def non_negative_int(value: Any, field: str) -> int:
    """Require an integer >= 0 (booleans rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfig(f"{field} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidConfig(f"{field} must be >= 0, got {value}")
    return value


def positive_int(value: Any, field: str) -> int:
    """Require an integer >= 1."""
    value = non_negative_int(value, field)
    if value == 0:
        raise InvalidConfig(f"{field} must be > 0, got {value}")
    return value


def enum_of(enum_cls: type[E], value: Any, field: str) -> E:
    """Coerce a member or its (case-insensitive) value into ``enum_cls``."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    valid = ", ".join(m.value for m in enum_cls)
    raise InvalidConfig(f"Invalid {field}: {value!r}. Must be one of: {valid}")


def string_set(value: Any, field: str) -> list[str]:
    """Require a set of string tags.

    Accepts a space-delimited string or an iterable of strings. Duplicates are
    dropped, first occurrence order is kept.
    """
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split()
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise InvalidConfig(f"{field} must be a list of strings, got {type(value).__name__}")

    tags: list[str] = []
    for item in items:
        if not isinstance(item, str) or not item.strip():
            raise InvalidConfig(f"{field} entries must be non-empty strings, got {item!r}")
        if " " in item.strip():
            raise InvalidConfig(f"{field} entry {item!r} must not contain spaces")
        tag = item.strip()
        if tag not in tags:
            tags.append(tag)
    return tags


def string_map(value: Any, field: str) -> dict[str, str]:
    """Require a mapping of string keys to scalar values (stored as strings)."""
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidConfig(f"{field} must be a mapping, got {type(value).__name__}")

    result: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str) or not key:
            raise InvalidConfig(f"{field} keys must be non-empty strings, got {key!r}")
        if isinstance(item, (dict, list, tuple, set)) or item is None:
            raise InvalidConfig(f"{field}[{key}] must be a scalar, got {item!r}")
        result[key] = item if isinstance(item, str) else str(item)
    return result
