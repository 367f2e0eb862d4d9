"""
Attribute maps and deltas.

* An attribute map is ``Dict[str, str]``; a missing key means the key does
  not exist in that version.
* A delta maps key ➜ new value, or ➜ ``None`` to remove the key.
"""

from typing import Any, Dict, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from .errors import InvalidAttributesError

Attributes = Dict[str, str]
Delta = Mapping[str, Optional[str]]

_ATTRIBUTES = TypeAdapter(Dict[str, str])
_DELTA = TypeAdapter(Dict[str, Optional[str]])


def validate_attributes(value: Any) -> Attributes:
    """Return a fresh ``str -> str`` dict or raise InvalidAttributesError."""
    try:
        return _ATTRIBUTES.validate_python(value, strict=True)
    except ValidationError as exc:
        raise InvalidAttributesError(
            f"attributes must map strings to strings: {exc.error_count()} error(s)"
        ) from exc


def validate_delta(value: Any) -> Dict[str, Optional[str]]:
    try:
        return _DELTA.validate_python(value, strict=True)
    except ValidationError as exc:
        raise InvalidAttributesError(
            f"update must map strings to strings or null: {exc.error_count()} error(s)"
        ) from exc


def apply_delta(attributes: Mapping[str, str], delta: Delta) -> Attributes:
    """Copy `attributes` with `delta` applied.

    Present value ➜ set/overwrite, ``None`` ➜ remove (no error if absent),
    keys not named in `delta` are left untouched.
    """
    out = dict(attributes)
    for key, value in delta.items():
        if value is None:
            out.pop(key, None)
        else:
            out[key] = value
    return out


def initial_attributes(delta: Delta) -> Attributes:
    """Attribute map for a brand-new record: deletion markers are dropped."""
    return {k: v for k, v in delta.items() if v is not None}
