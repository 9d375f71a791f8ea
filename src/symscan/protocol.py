"""Structured LSP types on top of the raw JSON-RPC connection.

Payloads are built and checked with :mod:`lsprotocol`'s converter, which
maps the camelCase wire form onto its attrs classes and back.
"""

from __future__ import annotations

from typing import TypeVar

from cattrs.errors import BaseValidationError
from lsprotocol import converters

from symscan.exceptions import MalformedPayload
from symscan.jsonrpc import JSONValue

T = TypeVar("T")

# cattrs reports structure mismatches with its own errors; bad enum values
# and missing keys surface as plain ValueError and KeyError.
DECODE_ERRORS = (BaseValidationError, KeyError, TypeError, ValueError, RecursionError)

_converter = converters.get_converter()


def encode(value: object) -> JSONValue:
    """Unstructure an lsprotocol object into its JSON wire form."""
    return _converter.unstructure(value)


def decode(payload: JSONValue, cls: type[T]) -> T:
    try:
        return _converter.structure(payload, cls)
    except DECODE_ERRORS as exc:
        raise MalformedPayload(cls.__name__, _describe(exc)) from exc


def _describe(exc: BaseException) -> str:
    if isinstance(exc, BaseValidationError):
        causes = "; ".join(
            f"{type(cause).__name__}: {cause}" for cause in exc.exceptions
        )
        return f"{exc.message} ({causes})" if causes else exc.message
    if isinstance(exc, RecursionError):
        return "nested too deeply"
    return f"{type(exc).__name__}: {exc}"
