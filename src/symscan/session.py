"""Handshake and document state machine for one language server session."""

from __future__ import annotations

import os
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog
from lsprotocol import types

from symscan import __version__
from symscan.connector import RemoteServerHandle
from symscan.exceptions import (
    DocumentReadError,
    InitializeFailed,
    ResponseError,
    SessionStateError,
    SymscanError,
    TransportClosed,
)
from symscan.invariants import never, require_positive
from symscan.jsonrpc import JSONValue
from symscan.symbols import SymbolNode, get_references, get_symbols, search_symbols

logger = structlog.get_logger(__name__)

CLIENT_NAME = "symscan"
DOCUMENT_VERSION = 1

CLIENT_CAPABILITIES = types.ClientCapabilities(
    text_document=types.TextDocumentClientCapabilities(
        document_symbol=types.DocumentSymbolClientCapabilities(
            hierarchical_document_symbol_support=True,
        ),
        synchronization=types.TextDocumentSyncClientCapabilities(
            did_save=False,
            dynamic_registration=False,
        ),
        references=types.ReferenceClientCapabilities(dynamic_registration=False),
    ),
    workspace=types.WorkspaceClientCapabilities(
        workspace_folders=True,
        configuration=True,
        symbol=types.WorkspaceSymbolClientCapabilities(dynamic_registration=False),
    ),
)


class SessionState(Enum):
    CREATED = "created"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    DOCUMENT_OPEN = "document_open"
    CLOSED = "closed"


READY = (SessionState.INITIALIZED, SessionState.DOCUMENT_OPEN)


@dataclass(frozen=True)
class TextDocument:
    uri: str
    language_id: str
    version: int
    text: str

    def to_item(self) -> types.TextDocumentItem:
        return types.TextDocumentItem(
            uri=self.uri,
            language_id=self.language_id,
            version=self.version,
            text=self.text,
        )


def build_initialize_params(root: Path) -> types.InitializeParams:
    resolved = root.resolve()
    root_uri = resolved.as_uri()
    return types.InitializeParams(
        capabilities=CLIENT_CAPABILITIES,
        process_id=os.getpid(),
        client_info=types.ClientInfo(name=CLIENT_NAME, version=__version__),
        root_uri=root_uri,
        workspace_folders=[types.WorkspaceFolder(uri=root_uri, name=resolved.name or root_uri)],
    )


class Session:
    """Drives ``initialize`` -> ``initialized`` -> ``didOpen`` -> queries.

    Each stage must finish before the next one may start, and the machine
    only moves forward. Once initialized, workspace queries are allowed;
    document queries need at least one open document. Several documents may
    be open at once. A failing stage closes the session.
    """

    def __init__(self, server: RemoteServerHandle, *, timeout: float) -> None:
        self.server = server
        self.timeout = require_positive(timeout, reason="invalid request timeout")
        self._state = SessionState.CREATED
        self.capabilities: JSONValue = None
        self.document: TextDocument | None = None
        self.documents: dict[str, TextDocument] = {}

    @property
    def state(self) -> SessionState:
        return self._state

    def _expect(self, expected: tuple[SessionState, ...], operation: str) -> None:
        if self._state not in expected:
            allowed = " or ".join(state.value for state in expected)
            raise SessionStateError(
                f"Cannot {operation} in state {self._state.value}; expected {allowed}"
            )

    def _fail(self) -> None:
        self._state = SessionState.CLOSED

    def _await(self, future: Future, stage: str) -> JSONValue:
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as exc:
            raise InitializeFailed(f"{stage} timed out after {self.timeout}s") from exc
        except ResponseError as exc:
            raise InitializeFailed(f"{stage} rejected by server: {exc}") from exc

    def initialize(self, root: Path) -> JSONValue:
        self._expect((SessionState.CREATED,), "initialize")
        self._state = SessionState.INITIALIZING
        params = build_initialize_params(root)
        logger.info("session.initializing", root_uri=params.root_uri)
        try:
            result = self._await(self.server.initialize(params), "initialize")
            self.server.initialized()
        except SymscanError:
            self._fail()
            raise
        self.capabilities = result.get("capabilities") if isinstance(result, dict) else None
        self._state = SessionState.INITIALIZED
        logger.info("session.initialized", root_uri=params.root_uri)
        return result

    def open_document(self, path: Path, *, language_id: str = "java") -> TextDocument:
        self._expect(READY, "open a document")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self._fail()
            raise DocumentReadError(f"Cannot read {path}: {exc}") from exc
        document = TextDocument(
            uri=path.resolve().as_uri(),
            language_id=language_id,
            version=DOCUMENT_VERSION,
            text=text,
        )
        if document.uri in self.documents:
            logger.debug("session.document_already_open", uri=document.uri)
            self.document = self.documents[document.uri]
            return self.document
        try:
            self.server.did_open(document.to_item())
        except TransportClosed:
            self._fail()
            raise
        self.documents[document.uri] = document
        self.document = document
        self._state = SessionState.DOCUMENT_OPEN
        logger.info("session.document_opened", uri=document.uri, chars=len(text))
        return document

    def document_symbols(self, document: TextDocument | None = None) -> list[SymbolNode]:
        """Symbols of ``document``, or of the most recently opened one."""
        self._expect((SessionState.DOCUMENT_OPEN,), "request document symbols")
        target = document if document is not None else self.document
        if target is None:
            never("document open without a document", state=self._state.value)
        if target.uri not in self.documents:
            raise SessionStateError(f"Cannot request symbols of {target.uri}; it was never opened")
        try:
            return get_symbols(self.server, target.uri, self.timeout)
        except SymscanError:
            self._fail()
            raise

    def references(self, uri: str, position: types.Position) -> list[types.Location]:
        self._expect((SessionState.DOCUMENT_OPEN,), "request references")
        if uri not in self.documents:
            raise SessionStateError(f"Cannot request references in {uri}; it was never opened")
        try:
            return get_references(self.server, uri, position, self.timeout)
        except SymscanError:
            self._fail()
            raise

    def workspace_symbols(self, query: str) -> list[SymbolNode]:
        self._expect(READY, "search workspace symbols")
        try:
            return search_symbols(self.server, query, self.timeout)
        except SymscanError:
            self._fail()
            raise

    def close(self) -> None:
        """Shut the server down politely if it is still reachable.

        Teardown problems are logged; they never replace the error that
        ended the session.
        """
        previous = self._state
        self._state = SessionState.CLOSED
        if previous in (SessionState.CREATED, SessionState.CLOSED, SessionState.INITIALIZING):
            return
        if self.server.closed:
            logger.info("session.closed", graceful=False)
            return
        try:
            future = self.server.shutdown()
            future.result(timeout=self.timeout)
            self.server.exit()
        except (FutureTimeoutError, ResponseError, TransportClosed) as exc:
            logger.warning("session.shutdown_failed", error=str(exc))
            return
        logger.info("session.closed", graceful=True)
