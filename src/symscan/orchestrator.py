from __future__ import annotations

import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import structlog

from symscan.chunks import MethodChunk, extract_method_chunks, find_source_files, link_callers
from symscan.client import NotificationEvent, NotificationSink
from symscan.config import ScanSettings
from symscan.connector import RemoteServerHandle, connect
from symscan.invariants import never
from symscan.locator import ServerInstallation, locate_installation
from symscan.process import ProcessFactory, launch
from symscan.session import Session, TextDocument
from symscan.symbols import SymbolNode

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ScanResult:
    installation: ServerInstallation
    document: TextDocument
    symbols: tuple[SymbolNode, ...]
    events: tuple[NotificationEvent, ...]


@dataclass(frozen=True)
class ChunkResult:
    installation: ServerInstallation
    files: tuple[Path, ...]
    chunks: tuple[MethodChunk, ...]
    events: tuple[NotificationEvent, ...]


@dataclass(frozen=True)
class SearchResult:
    installation: ServerInstallation
    query: str
    symbols: tuple[SymbolNode, ...]
    events: tuple[NotificationEvent, ...]


@contextmanager
def server_session(
    settings: ScanSettings,
    sink: NotificationSink,
    *,
    process_factory: ProcessFactory = subprocess.Popen,
    system_name: str | None = None,
    machine: str | None = None,
) -> Iterator[tuple[ServerInstallation, Session]]:
    """Locate, launch, connect and initialize; yield the ready session.

    On exit the session is shut down, the server process is terminated and
    the connection's listener thread has been waited for.
    """
    logger.info("scan.locating", server_home=str(settings.server_home))
    installation = locate_installation(
        settings.server_home, system_name=system_name, machine=machine
    )
    server: RemoteServerHandle | None = None
    try:
        with launch(
            settings.repo_path,
            installation,
            data_dir=settings.data_dir,
            java_executable=settings.java_executable,
            process_factory=process_factory,
        ) as process:
            server = connect(process, sink)
            session = Session(server, timeout=settings.timeout_seconds)
            try:
                session.initialize(settings.repo_path)
                yield installation, session
            finally:
                session.close()
                server.close()
    finally:
        if server is not None and not server.join(settings.timeout_seconds):
            logger.warning("scan.listener_still_running", connection=server.connection.name)


def run_scan(
    settings: ScanSettings,
    *,
    process_factory: ProcessFactory = subprocess.Popen,
    sink: NotificationSink | None = None,
    system_name: str | None = None,
    machine: str | None = None,
) -> ScanResult:
    """Locate, launch, connect, initialize, open and query, in that order.

    The server process is terminated before this returns or raises.
    """
    sink = sink if sink is not None else NotificationSink()
    target = settings.target_path
    stage = "startup"
    try:
        with server_session(
            settings,
            sink,
            process_factory=process_factory,
            system_name=system_name,
            machine=machine,
        ) as (installation, session):
            stage = "open_document"
            logger.info("scan.opening", path=str(target))
            document = session.open_document(target, language_id=settings.language_id)
            stage = "document_symbols"
            symbols = session.document_symbols()
    except Exception as exc:
        logger.error("scan.failed", stage=stage, error=str(exc))
        raise
    return ScanResult(
        installation=installation,
        document=document,
        symbols=tuple(symbols),
        events=sink.snapshot(),
    )


def run_chunks(
    settings: ScanSettings,
    *,
    process_factory: ProcessFactory = subprocess.Popen,
    sink: NotificationSink | None = None,
    system_name: str | None = None,
    machine: str | None = None,
) -> ChunkResult:
    """Open every source file in the repository and collect its methods.

    Callers and dependencies are filled from ``textDocument/references``
    once all files are open.
    """
    sink = sink if sink is not None else NotificationSink()
    files = find_source_files(settings.repo_path)
    logger.info("chunks.files", repo=str(settings.repo_path), count=len(files))
    stage = "startup"
    try:
        with server_session(
            settings,
            sink,
            process_factory=process_factory,
            system_name=system_name,
            machine=machine,
        ) as (installation, session):
            method_chunks: list[MethodChunk] = []
            for path in files:
                stage = "open_document"
                document = session.open_document(path, language_id=settings.language_id)
                stage = "document_symbols"
                nodes = session.document_symbols(document)
                method_chunks.extend(extract_method_chunks(nodes, document.text))

            def _references(chunk: MethodChunk):
                location = chunk.location
                if location is None or location.selection_range is None:
                    never("reference lookup without a selection range", method=chunk.qualified_name)
                return session.references(location.uri, location.selection_range.start)

            stage = "references"
            linked = link_callers(method_chunks, _references)
    except Exception as exc:
        logger.error("scan.failed", stage=stage, error=str(exc))
        raise
    return ChunkResult(
        installation=installation,
        files=tuple(files),
        chunks=tuple(linked),
        events=sink.snapshot(),
    )


def run_search(
    settings: ScanSettings,
    query: str,
    *,
    process_factory: ProcessFactory = subprocess.Popen,
    sink: NotificationSink | None = None,
    system_name: str | None = None,
    machine: str | None = None,
) -> SearchResult:
    sink = sink if sink is not None else NotificationSink()
    stage = "startup"
    try:
        with server_session(
            settings,
            sink,
            process_factory=process_factory,
            system_name=system_name,
            machine=machine,
        ) as (installation, session):
            stage = "workspace_symbols"
            symbols = session.workspace_symbols(query)
    except Exception as exc:
        logger.error("scan.failed", stage=stage, error=str(exc))
        raise
    return SearchResult(
        installation=installation,
        query=query,
        symbols=tuple(symbols),
        events=sink.snapshot(),
    )
