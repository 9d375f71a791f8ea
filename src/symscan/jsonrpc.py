"""JSON-RPC 2.0 over ``Content-Length`` framed byte streams.

:class:`JsonRpcConnection` owns one background listener thread, which is the
only reader of the inbound stream. Outgoing requests are correlated with
their responses through :class:`concurrent.futures.Future` objects.
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import Future
from typing import IO, Callable, TypeAlias

import structlog

from symscan.exceptions import ProtocolError, ResponseError, TransportClosed

logger = structlog.get_logger(__name__)

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]

RequestHandler = Callable[[str, JSONValue], JSONValue]
NotificationHandler = Callable[[str, JSONValue], None]
OutputHandler = Callable[[str], None]

METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

_HEADER_NAMES = ("content-length", "content-type")


def _split_header(text: str) -> tuple[str, str] | None:
    name, sep, value = text.partition(":")
    name = name.strip().lower()
    if not sep or name not in _HEADER_NAMES:
        return None
    return name, value.strip()


def read_message(
    stream: IO[bytes],
    *,
    on_output: OutputHandler | None = None,
) -> JSONObject | None:
    """Read one framed message; ``None`` means the stream reached EOF.

    Lines seen before a header block that are not headers are passed to
    ``on_output``: with stderr merged into stdout they are server console
    output, not protocol data.
    """
    length: int | None = None
    while True:
        line = stream.readline()
        if not line:
            return None
        text = line.decode("utf-8", errors="replace").rstrip("\r\n")
        if not text:
            if length is not None:
                break
            continue
        header = _split_header(text)
        if header is None:
            if length is not None:
                raise ProtocolError(f"Unexpected header line: {text!r}")
            if on_output is not None:
                on_output(text)
            continue
        name, value = header
        if name == "content-length":
            try:
                length = int(value)
            except ValueError as exc:
                raise ProtocolError(f"Invalid Content-Length: {value!r}") from exc
            if length <= 0:
                raise ProtocolError(f"Invalid Content-Length: {value!r}")
    body = stream.read(length)
    if body is None or len(body) < length:
        return None
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Invalid JSON body: {exc}") from exc
    except RecursionError as exc:
        raise ProtocolError("JSON body nested too deeply") from exc
    if not isinstance(message, dict):
        raise ProtocolError("Invalid LSP message payload")
    return message


def write_message(stream: IO[bytes], message: JSONObject) -> None:
    payload = json.dumps(message, ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii")
    stream.write(header + payload)
    stream.flush()


class JsonRpcConnection:
    def __init__(
        self,
        reader: IO[bytes],
        writer: IO[bytes],
        *,
        request_handler: RequestHandler | None = None,
        notification_handler: NotificationHandler | None = None,
        output_handler: OutputHandler | None = None,
        name: str = "lsp",
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._request_handler = request_handler
        self._notification_handler = notification_handler
        self._output_handler = output_handler
        self.name = name
        self._pending: dict[int, Future] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._closed = threading.Event()
        self._close_reason = ""
        self._thread: threading.Thread | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def close_reason(self) -> str:
        return self._close_reason

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._listen,
            name=f"{self.name}-listener",
            daemon=True,
        )
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def listening(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def send_request(self, method: str, params: JSONValue = None) -> Future:
        future: Future = Future()
        with self._lock:
            if self._closed.is_set():
                raise TransportClosed(self._closed_message(method))
            msg_id = self._next_id
            self._next_id += 1
            self._pending[msg_id] = future
        message: JSONObject = {"jsonrpc": "2.0", "id": msg_id, "method": method}
        if params is not None:
            message["params"] = params
        logger.debug("rpc.request", method=method, id=msg_id)
        try:
            self._write(message)
        except TransportClosed:
            # shutdown already failed the future
            pass
        return future

    def send_notification(self, method: str, params: JSONValue = None) -> None:
        if self._closed.is_set():
            raise TransportClosed(self._closed_message(method))
        message: JSONObject = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        logger.debug("rpc.notification", method=method)
        self._write(message)

    def close(self, reason: str = "connection closed by client") -> None:
        self._shutdown(reason)

    def _closed_message(self, method: str) -> str:
        return f"Cannot send {method}: {self._close_reason or 'connection closed'}"

    def _write(self, message: JSONObject) -> None:
        try:
            with self._write_lock:
                write_message(self._writer, message)
        except (OSError, ValueError) as exc:
            self._shutdown(f"write failed: {exc}")
            raise TransportClosed(f"Cannot write to {self.name}: {exc}") from exc

    def _listen(self) -> None:
        reason = "server closed the stream"
        try:
            while True:
                message = read_message(self._reader, on_output=self._on_output)
                if message is None:
                    break
                self._dispatch(message)
        except ProtocolError as exc:
            reason = f"protocol error: {exc}"
        except (OSError, ValueError) as exc:
            reason = f"read failed: {exc}"
        except Exception as exc:  # noqa: BLE001
            reason = f"listener failed: {type(exc).__name__}: {exc}"
            logger.error("rpc.listener_failed", connection=self.name, error=reason)
        finally:
            self._shutdown(reason)

    def _on_output(self, text: str) -> None:
        if self._output_handler is not None:
            self._output_handler(text)

    def _dispatch(self, message: JSONObject) -> None:
        method = message.get("method")
        if isinstance(method, str):
            params = message.get("params")
            if "id" in message:
                self._answer(message.get("id"), method, params)
            else:
                self._notify(method, params)
            return
        if "id" in message:
            self._resolve(message)
            return
        logger.warning("rpc.unrecognized_message", keys=sorted(message))

    def _answer(self, msg_id: JSONValue, method: str, params: JSONValue) -> None:
        response: JSONObject = {"jsonrpc": "2.0", "id": msg_id}
        if self._request_handler is None:
            response["error"] = {
                "code": METHOD_NOT_FOUND,
                "message": f"Method not found: {method}",
            }
        else:
            try:
                response["result"] = self._request_handler(method, params)
            except Exception as exc:  # noqa: BLE001
                logger.warning("rpc.request_handler_failed", method=method, error=str(exc))
                response["error"] = {"code": INTERNAL_ERROR, "message": str(exc)}
        try:
            self._write(response)
        except TransportClosed:
            logger.debug("rpc.answer_dropped", method=method)

    def _notify(self, method: str, params: JSONValue) -> None:
        if self._notification_handler is None:
            return
        try:
            self._notification_handler(method, params)
        except Exception as exc:  # noqa: BLE001
            logger.warning("rpc.notification_handler_failed", method=method, error=str(exc))

    def _resolve(self, message: JSONObject) -> None:
        msg_id = message.get("id")
        with self._lock:
            future = self._pending.pop(msg_id, None) if isinstance(msg_id, int) else None
        if future is None:
            logger.warning("rpc.unknown_response", id=msg_id)
            return
        error = message.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            future.set_exception(
                ResponseError(
                    code if isinstance(code, int) else INTERNAL_ERROR,
                    str(error.get("message", "")),
                    error.get("data"),
                )
            )
        else:
            future.set_result(message.get("result"))

    def _shutdown(self, reason: str) -> None:
        with self._lock:
            if self._closed.is_set():
                return
            self._close_reason = reason
            self._closed.set()
            pending = list(self._pending.items())
            self._pending.clear()
        logger.info("rpc.closed", connection=self.name, reason=reason, pending=len(pending))
        for msg_id, future in pending:
            if not future.done():
                future.set_exception(
                    TransportClosed(f"Request {msg_id} aborted: {reason}")
                )
