"""
Result type shared by the persistence layer and the auth flow.

A ``Valid`` carries a value, an ``Invalid`` carries an error description.
Callers branch with ``isinstance`` or the ``is_valid`` helper instead of
relying on exceptions.
"""

import json
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid(Generic[E]):
    error: E


ValidOrInvalid = Union[Valid[T], Invalid[E]]


def valid(value: T) -> Valid[T]:
    return Valid(value)


def invalid(error: E) -> Invalid[E]:
    return Invalid(error)


def is_valid(result: ValidOrInvalid[Any, Any]) -> bool:
    return isinstance(result, Valid)


def is_invalid(result: ValidOrInvalid[Any, Any]) -> bool:
    return isinstance(result, Invalid)


def get_valid_value(result: ValidOrInvalid[T, Any], fallback: T) -> T:
    """Return the wrapped value, or ``fallback`` for an ``Invalid``."""
    if isinstance(result, Valid):
        return result.value
    return fallback


def parse_json_safely(raw: Union[str, bytes]) -> ValidOrInvalid[Any, str]:
    """
    Parse JSON without raising on malformed input.

    Args:
        raw: JSON document as text or bytes

    Returns:
        Valid with the decoded document, or Invalid with the parser message
    """
    try:
        return valid(json.loads(raw))
    except (TypeError, ValueError) as e:
        return invalid(str(e))
