"""Symbol retrieval and normalization.

Servers answer ``textDocument/documentSymbol`` with either flat
``SymbolInformation`` records or nested ``DocumentSymbol`` records. Both are
normalized here into :class:`SymbolNode` trees so nothing downstream has to
care which shape the server chose. Trees are built and walked with explicit
stacks; walking never grows the Python call stack.

``workspace/symbol`` results normalize into flat nodes the same way, and
``textDocument/references`` results into plain locations.
"""

from __future__ import annotations

from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Iterator, Sequence

import structlog
from lsprotocol import types
from lsprotocol.types import SymbolKind

from symscan.connector import RemoteServerHandle
from symscan.exceptions import MalformedPayload, QueryError, ResponseError
from symscan.jsonrpc import JSONValue
from symscan.protocol import decode

logger = structlog.get_logger(__name__)

INDENT = "  "


@dataclass(frozen=True)
class SymbolLocation:
    uri: str
    range: types.Range | None = None
    selection_range: types.Range | None = None


@dataclass(frozen=True)
class SymbolNode:
    name: str
    kind: SymbolKind
    location: SymbolLocation | None = None
    detail: str | None = None
    children: tuple["SymbolNode", ...] = ()
    flat: bool = False


def kind_label(kind: SymbolKind | int) -> str:
    if isinstance(kind, SymbolKind):
        return kind.name
    return str(kind)


def _from_information(info: types.SymbolInformation) -> SymbolNode:
    return SymbolNode(
        name=info.name,
        kind=info.kind,
        location=SymbolLocation(info.location.uri, info.location.range),
        detail=info.container_name,
        flat=True,
    )


def _from_workspace_symbol(symbol: types.WorkspaceSymbol) -> SymbolNode:
    return SymbolNode(
        name=symbol.name,
        kind=symbol.kind,
        location=SymbolLocation(symbol.location.uri, getattr(symbol.location, "range", None)),
        detail=symbol.container_name,
        flat=True,
    )


def _from_document_symbol(root: types.DocumentSymbol, document_uri: str) -> SymbolNode:
    built: dict[int, SymbolNode] = {}
    stack: list[tuple[types.DocumentSymbol, bool]] = [(root, False)]
    while stack:
        symbol, expanded = stack.pop()
        children = symbol.children or []
        if not expanded:
            stack.append((symbol, True))
            stack.extend((child, False) for child in children)
            continue
        built[id(symbol)] = SymbolNode(
            name=symbol.name,
            kind=symbol.kind,
            location=SymbolLocation(document_uri, symbol.range, symbol.selection_range),
            detail=symbol.detail,
            children=tuple(built.pop(id(child)) for child in children),
        )
    return built[id(root)]


def _items(payload: JSONValue, what: str) -> list[dict]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise QueryError(f"Unexpected {what} result: {type(payload).__name__}")
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise QueryError(f"Item #{index} of {what} is not an object")
    return payload


def normalize_symbols(payload: JSONValue, document_uri: str) -> list[SymbolNode]:
    """Convert a documentSymbol result into root nodes, keeping server order."""
    roots: list[SymbolNode] = []
    for index, item in enumerate(_items(payload, f"documentSymbol for {document_uri}")):
        try:
            if "location" in item:
                roots.append(_from_information(decode(item, types.SymbolInformation)))
            else:
                symbol = decode(item, types.DocumentSymbol)
                roots.append(_from_document_symbol(symbol, document_uri))
        except MalformedPayload as exc:
            raise QueryError(f"Malformed symbol #{index} for {document_uri}: {exc}") from exc
    return roots


def normalize_workspace_symbols(payload: JSONValue) -> list[SymbolNode]:
    nodes: list[SymbolNode] = []
    for index, item in enumerate(_items(payload, "workspace/symbol")):
        location = item.get("location")
        try:
            if isinstance(location, dict) and "range" in location:
                nodes.append(_from_information(decode(item, types.SymbolInformation)))
            else:
                nodes.append(_from_workspace_symbol(decode(item, types.WorkspaceSymbol)))
        except MalformedPayload as exc:
            raise QueryError(f"Malformed workspace symbol #{index}: {exc}") from exc
    return nodes


def normalize_locations(payload: JSONValue, what: str) -> list[types.Location]:
    locations: list[types.Location] = []
    for index, item in enumerate(_items(payload, what)):
        try:
            locations.append(decode(item, types.Location))
        except MalformedPayload as exc:
            raise QueryError(f"Malformed location #{index} of {what}: {exc}") from exc
    return locations


def walk_symbols(nodes: Sequence[SymbolNode]) -> Iterator[tuple[int, SymbolNode]]:
    """Depth-first pre-order: each node, then all its children, then its siblings."""
    stack = [(0, node) for node in reversed(nodes)]
    while stack:
        depth, node = stack.pop()
        yield depth, node
        stack.extend((depth + 1, child) for child in reversed(node.children))


def format_symbol(node: SymbolNode, depth: int) -> str:
    line = f"{INDENT * depth}- {node.name} ({kind_label(node.kind)})"
    if node.flat and node.location is not None:
        line += f" [{node.location.uri}]"
    return line


def render_symbol_tree(nodes: Sequence[SymbolNode]) -> list[str]:
    return [format_symbol(node, depth) for depth, node in walk_symbols(nodes)]


def format_search_result(index: int, node: SymbolNode) -> list[str]:
    """One numbered search hit; lines and columns are shown 1-based."""
    lines = [f"{index}. {node.name}", f"   Kind: {kind_label(node.kind)}"]
    if node.location is not None:
        lines.append(f"   Location: {node.location.uri}")
        if node.location.range is not None:
            start = node.location.range.start
            lines.append(f"   Range: Line {start.line + 1}, Col {start.character + 1}")
    if node.detail:
        lines.append(f"   Container: {node.detail}")
    return lines


def render_search_results(nodes: Sequence[SymbolNode]) -> list[str]:
    if not nodes:
        return ["No symbols found"]
    lines: list[str] = []
    for index, node in enumerate(nodes, start=1):
        lines.extend(format_search_result(index, node))
        lines.append("")
    return lines


def count_symbols(nodes: Sequence[SymbolNode]) -> int:
    return sum(1 for _ in walk_symbols(nodes))


def _result(future: Future, what: str, timeout: float) -> JSONValue:
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        raise QueryError(f"{what} timed out after {timeout}s") from exc
    except ResponseError as exc:
        raise QueryError(f"{what} failed: {exc}") from exc


def get_symbols(server: RemoteServerHandle, uri: str, timeout: float) -> list[SymbolNode]:
    logger.info("symbols.requesting", uri=uri)
    payload = _result(server.document_symbol(uri), f"documentSymbol for {uri}", timeout)
    nodes = normalize_symbols(payload, uri)
    logger.info("symbols.received", uri=uri, roots=len(nodes), total=count_symbols(nodes))
    return nodes


def search_symbols(server: RemoteServerHandle, query: str, timeout: float) -> list[SymbolNode]:
    logger.info("symbols.searching", query=query)
    payload = _result(server.workspace_symbol(query), f"workspace/symbol for {query!r}", timeout)
    nodes = normalize_workspace_symbols(payload)
    logger.info("symbols.found", query=query, total=len(nodes))
    return nodes


def get_references(
    server: RemoteServerHandle,
    uri: str,
    position: types.Position,
    timeout: float,
) -> list[types.Location]:
    what = f"references at {uri}:{position.line}:{position.character}"
    payload = _result(server.references(uri, position), what, timeout)
    locations = normalize_locations(payload, what)
    logger.debug("symbols.references", uri=uri, line=position.line, total=len(locations))
    return locations
