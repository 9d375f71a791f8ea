"""Error taxonomy for a symscan run.

Every stage raises a subclass of :class:`SymscanError`; nothing in the core
recovers locally, so the first failure ends the run.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class SymscanError(RuntimeError):
    """Base class for failures surfaced to the command line."""


class NeverThrown(SymscanError):
    """Raised by :func:`symscan.invariants.never` for unreachable states."""

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.reason = message
        self.env = dict(env or {})


class ConfigError(SymscanError):
    pass


class ConfigMissing(ConfigError):
    def __init__(self, key: str, source: Path | None = None):
        where = f" in {source}" if source is not None else ""
        super().__init__(f"Missing required setting {key!r}{where}")
        self.key = key
        self.source = source


class ServerNotFound(SymscanError):
    pass


class LauncherArtifactMissing(ServerNotFound):
    def __init__(self, plugins_dir: Path):
        super().__init__(f"Cannot find JDT LS launcher JAR in: {plugins_dir}")
        self.plugins_dir = plugins_dir


class AmbiguousLauncherArtifact(ServerNotFound):
    def __init__(self, plugins_dir: Path, candidates: Sequence[Path]):
        names = ", ".join(path.name for path in candidates)
        super().__init__(
            f"Found {len(candidates)} launcher JARs in {plugins_dir}: {names}"
        )
        self.plugins_dir = plugins_dir
        self.candidates = tuple(candidates)


class ConfigDirMissing(ServerNotFound):
    def __init__(self, config_dir: Path):
        super().__init__(f"Cannot find config dir: {config_dir}")
        self.config_dir = config_dir


class LaunchError(SymscanError):
    pass


class TransportError(SymscanError):
    pass


class TransportClosed(TransportError):
    pass


class ProtocolError(TransportError):
    pass


class ResponseError(SymscanError):
    """A JSON-RPC error response returned by the server."""

    def __init__(self, code: int, message: str, data: object = None):
        super().__init__(f"LSP error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class SessionError(SymscanError):
    pass


class SessionStateError(SessionError):
    pass


class InitializeFailed(SessionError):
    pass


class DocumentReadError(SessionError):
    pass


class QueryError(SessionError):
    pass


class MalformedPayload(SymscanError):
    """A protocol payload did not match the structure its method defines."""

    def __init__(self, type_name: str, detail: str):
        super().__init__(f"Malformed {type_name}: {detail}")
        self.type_name = type_name
        self.detail = detail
