"""Invariant markers."""

from __future__ import annotations

from typing import NoReturn, TypeVar

from symscan.exceptions import NeverThrown

T = TypeVar("T")


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as unreachable.

    The env payload is carried on the exception for diagnostics only.
    """
    raise NeverThrown(reason or "never() marker reached", env=env)


def require_positive(value: T, *, reason: str, **env: object) -> T:
    try:
        positive = float(value) > 0  # type: ignore[arg-type]
    except (TypeError, ValueError):
        positive = False
    if not positive:
        never(reason, value=value, **env)
    return value
