""" Decoders for dynamic values returned by Nvim

    All decoders are total: they return None when the value
    does not have the expected shape.
"""
from typing import Any, Optional

# ruff: noqa: ANN401


def as_map(value: Any) -> Optional[dict]:
    return value if isinstance(value, dict) else None


def as_array(value: Any) -> Optional[list]:
    match value:
        case list(arr):
            return arr
        case tuple(arr):
            return list(arr)
        case _:
            return None


def as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def as_int(value: Any) -> Optional[int]:
    # Booleans are a distinct msgpack type
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def to_attrs_map(mapping: dict) -> Optional[dict[str, Any]]:
    """ Return the mapping if all its keys are strings
    """
    if all(isinstance(k, str) for k in mapping):
        return mapping
    return None


def get_attr(mapping: Optional[dict], key: str) -> Any:
    return mapping.get(key) if mapping is not None else None
