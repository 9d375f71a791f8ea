"""Client side of the protocol: passive handling of server-initiated messages."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Union

import structlog
from lsprotocol import types

from symscan.exceptions import MalformedPayload
from symscan.jsonrpc import JSONValue
from symscan.protocol import decode

logger = structlog.get_logger(__name__)

MessageType = types.MessageType


@dataclass(frozen=True)
class Diagnostics:
    uri: str
    diagnostics: tuple[types.Diagnostic, ...]


@dataclass(frozen=True)
class LogMessage:
    message: str
    severity: MessageType


@dataclass(frozen=True)
class ShowMessage:
    message: str
    severity: MessageType


@dataclass(frozen=True)
class TelemetryEvent:
    payload: JSONValue


@dataclass(frozen=True)
class UserPromptRequest:
    message: str
    severity: MessageType
    actions: tuple[str, ...]


NotificationEvent = Union[Diagnostics, LogMessage, ShowMessage, TelemetryEvent, UserPromptRequest]


def _log_method(severity: int) -> str:
    if severity == MessageType.Error:
        return "error"
    if severity == MessageType.Warning:
        return "warning"
    if severity >= MessageType.Log:
        return "debug"
    return "info"


@dataclass
class NotificationSink:
    """Records and echoes whatever the server pushes at the client.

    Nothing recorded here feeds back into the session; replies to server
    requests are fixed neutral values (``null`` for prompts, meaning no
    action was chosen).
    """

    events: list[NotificationEvent] = field(default_factory=list)
    output: list[str] = field(default_factory=list)
    listener: Callable[[NotificationEvent], None] | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def snapshot(self) -> tuple[NotificationEvent, ...]:
        with self._lock:
            return tuple(self.events)

    def _record(self, event: NotificationEvent) -> None:
        with self._lock:
            self.events.append(event)
        if self.listener is not None:
            self.listener(event)

    def handle_output(self, line: str) -> None:
        with self._lock:
            self.output.append(line)
        logger.debug("server.output", line=line)

    def handle_notification(self, method: str, params: JSONValue) -> None:
        try:
            if method == types.TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS:
                self._on_diagnostics(decode(params, types.PublishDiagnosticsParams))
            elif method == types.WINDOW_LOG_MESSAGE:
                message = decode(params, types.LogMessageParams)
                self._record(LogMessage(message.message, message.type))
                getattr(logger, _log_method(message.type))("server.log", message=message.message)
            elif method == types.WINDOW_SHOW_MESSAGE:
                shown = decode(params, types.ShowMessageParams)
                self._record(ShowMessage(shown.message, shown.type))
                getattr(logger, _log_method(shown.type))("server.message", message=shown.message)
            elif method == types.TELEMETRY_EVENT:
                self._record(TelemetryEvent(params))
                logger.debug("server.telemetry", payload=params)
            else:
                logger.debug("server.notification_ignored", method=method)
        except MalformedPayload as exc:
            logger.warning("server.notification_malformed", method=method, error=str(exc))

    def handle_request(self, method: str, params: JSONValue) -> JSONValue:
        if method == types.WINDOW_SHOW_MESSAGE_REQUEST:
            try:
                prompt = decode(params, types.ShowMessageRequestParams)
            except MalformedPayload as exc:
                logger.warning("server.prompt_malformed", error=str(exc))
                return None
            titles = tuple(action.title for action in prompt.actions or ())
            self._record(UserPromptRequest(prompt.message, prompt.type, titles))
            logger.info("server.prompt", message=prompt.message, actions=list(titles))
            return None
        if method == types.WORKSPACE_CONFIGURATION:
            items = params.get("items", []) if isinstance(params, dict) else []
            return [None for _ in items] if isinstance(items, list) else []
        logger.debug("server.request_acknowledged", method=method)
        return None

    def _on_diagnostics(self, params: types.PublishDiagnosticsParams) -> None:
        self._record(Diagnostics(params.uri, tuple(params.diagnostics)))
        logger.info("server.diagnostics", uri=params.uri, count=len(params.diagnostics))
        for diagnostic in params.diagnostics:
            logger.debug(
                "server.diagnostic",
                uri=params.uri,
                line=diagnostic.range.start.line,
                severity=diagnostic.severity,
                message=diagnostic.message,
            )
