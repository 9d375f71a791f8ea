from __future__ import annotations

from concurrent.futures import Future

from symscan.connector import RemoteServerHandle
from symscan.exceptions import TransportClosed

HANG = object()


class ScriptedConnection:
    """In-memory connection answering requests from a method -> reply table.

    A reply may be a value, an exception instance (set on the future) or
    :data:`HANG` to leave the future pending.
    """

    def __init__(self, replies: dict[str, object] | None = None) -> None:
        self.replies = dict(replies or {})
        self.sent: list[tuple[str, object]] = []
        self.closed = False

    def methods(self) -> list[str]:
        return [method for method, _ in self.sent]

    def send_request(self, method: str, params: object = None) -> Future:
        if self.closed:
            raise TransportClosed(f"Cannot send {method}: closed")
        self.sent.append((method, params))
        future: Future = Future()
        reply = self.replies.get(method)
        if reply is HANG:
            return future
        if isinstance(reply, BaseException):
            future.set_exception(reply)
        else:
            future.set_result(reply)
        return future

    def send_notification(self, method: str, params: object = None) -> None:
        if self.closed:
            raise TransportClosed(f"Cannot send {method}: closed")
        self.sent.append((method, params))

    def close(self, reason: str = "") -> None:
        self.closed = True


def scripted_handle(replies: dict[str, object] | None = None) -> tuple[RemoteServerHandle, ScriptedConnection]:
    connection = ScriptedConnection(replies)
    return RemoteServerHandle(connection), connection  # type: ignore[arg-type]
