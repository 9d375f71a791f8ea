from __future__ import annotations

from concurrent.futures import Future
from typing import IO

import structlog
from lsprotocol import types

from symscan.client import NotificationSink
from symscan.jsonrpc import JsonRpcConnection
from symscan.process import ServerProcess
from symscan.protocol import encode

logger = structlog.get_logger(__name__)


class RemoteServerHandle:
    """Typed proxy for the language server.

    Requests return futures the caller awaits; notifications are written and
    forgotten. Safe for a single caller.
    """

    def __init__(self, connection: JsonRpcConnection) -> None:
        self.connection = connection

    @property
    def closed(self) -> bool:
        return self.connection.closed

    def initialize(self, params: types.InitializeParams) -> Future:
        payload = encode(params)
        # processId is nullable but required by the protocol
        payload.setdefault("processId", None)
        return self.connection.send_request(types.INITIALIZE, payload)

    def initialized(self) -> None:
        self.connection.send_notification(types.INITIALIZED, encode(types.InitializedParams()))

    def did_open(self, document: types.TextDocumentItem) -> None:
        params = types.DidOpenTextDocumentParams(text_document=document)
        self.connection.send_notification(types.TEXT_DOCUMENT_DID_OPEN, encode(params))

    def document_symbol(self, uri: str) -> Future:
        params = types.DocumentSymbolParams(text_document=types.TextDocumentIdentifier(uri=uri))
        return self.connection.send_request(types.TEXT_DOCUMENT_DOCUMENT_SYMBOL, encode(params))

    def workspace_symbol(self, query: str) -> Future:
        params = types.WorkspaceSymbolParams(query=query)
        return self.connection.send_request(types.WORKSPACE_SYMBOL, encode(params))

    def references(
        self,
        uri: str,
        position: types.Position,
        *,
        include_declaration: bool = False,
    ) -> Future:
        params = types.ReferenceParams(
            text_document=types.TextDocumentIdentifier(uri=uri),
            position=position,
            context=types.ReferenceContext(include_declaration=include_declaration),
        )
        return self.connection.send_request(types.TEXT_DOCUMENT_REFERENCES, encode(params))

    def shutdown(self) -> Future:
        return self.connection.send_request(types.SHUTDOWN)

    def exit(self) -> None:
        self.connection.send_notification(types.EXIT)

    def close(self) -> None:
        self.connection.close()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the listener thread; ``True`` once it has stopped."""
        self.connection.join(timeout)
        return not self.connection.listening


def connect_streams(
    reader: IO[bytes],
    writer: IO[bytes],
    sink: NotificationSink,
    *,
    name: str = "jdtls",
) -> RemoteServerHandle:
    connection = JsonRpcConnection(
        reader,
        writer,
        request_handler=sink.handle_request,
        notification_handler=sink.handle_notification,
        output_handler=sink.handle_output,
        name=name,
    )
    connection.start()
    return RemoteServerHandle(connection)


def connect(process: ServerProcess, sink: NotificationSink) -> RemoteServerHandle:
    """Bind a JSON-RPC connection to the server's stdout/stdin and start listening."""
    logger.info("transport.connecting", pid=process.pid)
    return connect_streams(process.stdout, process.stdin, sink)
