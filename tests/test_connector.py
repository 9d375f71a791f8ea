from __future__ import annotations

import io
import os
from concurrent.futures import Future

import pytest
from lsprotocol import types

from symscan.client import NotificationSink
from symscan.connector import RemoteServerHandle, connect, connect_streams
from symscan.exceptions import TransportClosed
from symscan.jsonrpc import read_message, write_message
from symscan.session import build_initialize_params

WAIT = 5.0


class _RecordingConnection:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, object]] = []
        self.closed = False

    def send_request(self, method, params=None):
        self.sent.append(("request", method, params))
        future: Future = Future()
        future.set_result(None)
        return future

    def send_notification(self, method, params=None):
        self.sent.append(("notification", method, params))

    def close(self, reason: str = "") -> None:
        self.closed = True


def test_handle_encodes_camel_case_params(tmp_path) -> None:
    connection = _RecordingConnection()
    handle = RemoteServerHandle(connection)  # type: ignore[arg-type]
    handle.initialize(build_initialize_params(tmp_path))
    handle.initialized()
    handle.did_open(
        types.TextDocumentItem(uri="file:///r/A.java", language_id="java", version=1, text="class A {}")
    )
    handle.document_symbol("file:///r/A.java")
    handle.workspace_symbol("Main")
    handle.references("file:///r/A.java", types.Position(line=0, character=6))
    handle.shutdown()
    handle.exit()

    kinds = [(kind, method) for kind, method, _ in connection.sent]
    assert kinds == [
        ("request", "initialize"),
        ("notification", "initialized"),
        ("notification", "textDocument/didOpen"),
        ("request", "textDocument/documentSymbol"),
        ("request", "workspace/symbol"),
        ("request", "textDocument/references"),
        ("request", "shutdown"),
        ("notification", "exit"),
    ]
    init_params = connection.sent[0][2]
    assert init_params["processId"] == os.getpid()
    assert init_params["rootUri"] == tmp_path.resolve().as_uri()
    assert init_params["workspaceFolders"][0]["uri"] == tmp_path.resolve().as_uri()
    assert init_params["capabilities"]["textDocument"]["documentSymbol"] == {
        "hierarchicalDocumentSymbolSupport": True
    }
    assert connection.sent[1][2] == {}
    assert connection.sent[2][2] == {
        "textDocument": {
            "uri": "file:///r/A.java",
            "languageId": "java",
            "version": 1,
            "text": "class A {}",
        }
    }
    assert connection.sent[3][2] == {"textDocument": {"uri": "file:///r/A.java"}}
    assert connection.sent[4][2] == {"query": "Main"}
    assert connection.sent[5][2] == {
        "textDocument": {"uri": "file:///r/A.java"},
        "position": {"line": 0, "character": 6},
        "context": {"includeDeclaration": False},
    }


def test_connect_streams_wires_sink_handlers() -> None:
    s2c_read, s2c_write = os.pipe()
    c2s_read, c2s_write = os.pipe()
    reader = os.fdopen(s2c_read, "rb")
    server_out = os.fdopen(s2c_write, "wb")
    server_in = os.fdopen(c2s_read, "rb")
    writer = os.fdopen(c2s_write, "wb")
    sink = NotificationSink()
    handle = connect_streams(reader, writer, sink, name="jdtls-test")
    try:
        write_message(
            server_out,
            {"jsonrpc": "2.0", "id": 1, "method": "window/showMessageRequest",
             "params": {"type": 3, "message": "Trust workspace?", "actions": [{"title": "Ok"}]}},
        )
        reply = read_message(server_in)
        assert reply == {"jsonrpc": "2.0", "id": 1, "result": None}
        assert sink.snapshot()[0].message == "Trust workspace?"
    finally:
        handle.close()
        server_out.close()
        writer.close()
        server_in.close()
        reader.close()
    assert handle.closed


def test_connect_uses_process_pipes() -> None:
    class _Process:
        pid = 11
        stdout = io.BytesIO()
        stdin = io.BytesIO()

    handle = connect(_Process(), NotificationSink())  # type: ignore[arg-type]
    # empty stdout is an immediate EOF
    assert handle.join(WAIT)
    assert handle.closed
    assert not handle.connection.listening
    with pytest.raises(TransportClosed):
        handle.document_symbol("file:///r/A.java")


def test_initialize_keeps_null_process_id() -> None:
    connection = _RecordingConnection()
    handle = RemoteServerHandle(connection)  # type: ignore[arg-type]
    handle.initialize(types.InitializeParams(capabilities=types.ClientCapabilities()))
    (_, method, params) = connection.sent[0]
    assert method == "initialize"
    assert params["processId"] is None
    assert "clientInfo" not in params
