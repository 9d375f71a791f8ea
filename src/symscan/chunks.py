from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Sequence

import structlog
from lsprotocol import types
from lsprotocol.types import SymbolKind

from symscan.schema import MethodChunkDTO
from symscan.symbols import SymbolLocation, SymbolNode

logger = structlog.get_logger(__name__)

TYPE_KINDS = frozenset({SymbolKind.Class, SymbolKind.Interface, SymbolKind.Enum})
DEFAULT_RETURN_TYPE = "void"
SOURCE_SUFFIX = ".java"


@dataclass(frozen=True)
class MethodChunk:
    class_name: str
    method_name: str
    return_type: str
    parameters: tuple[str, ...]
    code: str
    called_by: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    location: SymbolLocation | None = field(default=None, compare=False, repr=False)

    @property
    def qualified_name(self) -> str:
        return f"{self.class_name}::{self.method_name}"

    def to_dto(self) -> MethodChunkDTO:
        return MethodChunkDTO(
            class_name=self.class_name,
            method_name=self.method_name,
            return_type=self.return_type,
            parameters=list(self.parameters),
            method_code=self.code,
            called_by=list(self.called_by),
            dependencies=list(self.dependencies),
        )


ReferenceLookup = Callable[[MethodChunk], Sequence[types.Location]]


def find_source_files(root: Path, suffix: str = SOURCE_SUFFIX) -> list[Path]:
    """Every regular file under ``root`` ending in ``suffix``, in path order."""
    return sorted(path for path in root.rglob(f"*{suffix}") if path.is_file())


def _split_parameters(text: str) -> tuple[str, ...]:
    inner = text.strip()
    if inner.startswith("("):
        inner = inner[1:]
    if inner.endswith(")"):
        inner = inner[:-1]
    parts: list[str] = []
    depth = 0
    current = ""
    for char in inner:
        # commas inside generic arguments do not separate parameters
        if char == "<":
            depth += 1
        elif char == ">":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        current += char
    parts.append(current)
    return tuple(part.strip() for part in parts if part.strip())


def parse_signature(detail: str | None) -> tuple[str, tuple[str, ...]]:
    """Split a method detail such as ``(String a, int b) : void``."""
    if not detail:
        return DEFAULT_RETURN_TYPE, ()
    parts = detail.split(" : ")
    if len(parts) == 2:
        return parts[1].strip() or DEFAULT_RETURN_TYPE, _split_parameters(parts[0])
    text = detail.strip()
    if len(parts) == 1 and text.startswith("(") and text.endswith(")"):
        return DEFAULT_RETURN_TYPE, _split_parameters(text)
    return DEFAULT_RETURN_TYPE, ()


def _source_slice(lines: Sequence[str], node: SymbolNode) -> str:
    if node.location is None or node.location.range is None:
        return ""
    start = node.location.range.start.line
    end = node.location.range.end.line
    return "\n".join(lines[start : end + 1])


def extract_method_chunks(nodes: Sequence[SymbolNode], text: str) -> list[MethodChunk]:
    """Collect every method with its enclosing type, in pre-order."""
    lines = text.split("\n")
    chunks: list[MethodChunk] = []
    stack: list[tuple[SymbolNode, str | None]] = [(node, None) for node in reversed(nodes)]
    while stack:
        node, enclosing = stack.pop()
        class_name = node.name if node.kind in TYPE_KINDS else enclosing
        if node.kind == SymbolKind.Method:
            if class_name is None:
                logger.warning("chunks.method_without_type", method=node.name)
            else:
                return_type, parameters = parse_signature(node.detail)
                chunks.append(
                    MethodChunk(
                        class_name=class_name,
                        method_name=node.name,
                        return_type=return_type,
                        parameters=parameters,
                        code=_source_slice(lines, node),
                        location=node.location,
                    )
                )
        stack.extend((child, class_name) for child in reversed(node.children))
    return chunks


def _is_declaration(target: MethodChunk, reference: types.Location) -> bool:
    location = target.location
    if location is None or location.selection_range is None:
        return False
    return reference.uri == location.uri and reference.range.start == location.selection_range.start


def _encloses(caller: MethodChunk, reference: types.Location) -> bool:
    location = caller.location
    if location is None or location.range is None or location.uri != reference.uri:
        return False
    return (
        location.range.start.line <= reference.range.start.line
        and reference.range.end.line <= location.range.end.line
    )


def link_callers(chunks: Sequence[MethodChunk], lookup: ReferenceLookup) -> list[MethodChunk]:
    """Fill ``called_by`` and ``dependencies`` from reference locations.

    ``lookup`` returns the places a method is referenced. Each reference is
    attributed to the first chunk whose source range contains it; calls a
    method makes to itself are ignored.
    """
    callers: list[list[str]] = [[] for _ in chunks]
    callees: list[list[str]] = [[] for _ in chunks]
    for index, target in enumerate(chunks):
        if target.location is None or target.location.selection_range is None:
            logger.debug("chunks.references_skipped", method=target.qualified_name)
            continue
        for reference in lookup(target):
            if _is_declaration(target, reference):
                continue
            for caller_index, caller in enumerate(chunks):
                if caller.qualified_name == target.qualified_name or not _encloses(caller, reference):
                    continue
                if caller.qualified_name not in callers[index]:
                    callers[index].append(caller.qualified_name)
                if target.qualified_name not in callees[caller_index]:
                    callees[caller_index].append(target.qualified_name)
                break
    linked = [
        replace(chunk, called_by=tuple(callers[index]), dependencies=tuple(callees[index]))
        for index, chunk in enumerate(chunks)
    ]
    logger.info(
        "chunks.linked",
        methods=len(linked),
        edges=sum(len(chunk.called_by) for chunk in linked),
    )
    return linked
