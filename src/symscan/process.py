from __future__ import annotations

import subprocess
from pathlib import Path
from typing import IO, Callable, Sequence

import structlog

from symscan.exceptions import LaunchError
from symscan.invariants import never, require_positive
from symscan.locator import ServerInstallation

logger = structlog.get_logger(__name__)

APPLICATION_ID = "org.eclipse.jdt.ls.core.id1"
PRODUCT_ID = "org.eclipse.jdt.ls.core.product"
BUNDLE_START_LEVEL = 4
HEAP_CAP = "1G"

ProcessFactory = Callable[..., subprocess.Popen]


def build_command(
    installation: ServerInstallation,
    data_dir: Path,
    *,
    java_executable: str = "java",
) -> list[str]:
    return [
        java_executable,
        f"-Declipse.application={APPLICATION_ID}",
        f"-Dosgi.bundles.defaultStartLevel={BUNDLE_START_LEVEL}",
        f"-Declipse.product={PRODUCT_ID}",
        f"-Xmx{HEAP_CAP}",
        "-jar",
        str(installation.launcher_path),
        "-configuration",
        str(installation.config_dir),
        "-data",
        str(data_dir),
    ]


class ServerProcess:
    """Owns the language server child process.

    stderr is merged into stdout, so :attr:`stdout` is the only stream the
    server writes to. Used as a context manager the child is terminated on
    every exit path.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        command: Sequence[str],
        *,
        terminate_timeout: float = 5.0,
    ) -> None:
        if proc.stdin is None or proc.stdout is None:
            never("server process launched without pipes", command=list(command))
        self._proc = proc
        self.command = tuple(command)
        self.terminate_timeout = require_positive(
            terminate_timeout, reason="invalid terminate timeout"
        )

    @property
    def stdin(self) -> IO[bytes]:
        return self._proc.stdin  # type: ignore[return-value]

    @property
    def stdout(self) -> IO[bytes]:
        return self._proc.stdout  # type: ignore[return-value]

    @property
    def pid(self) -> int | None:
        return getattr(self._proc, "pid", None)

    @property
    def returncode(self) -> int | None:
        return self._proc.poll()

    def is_running(self) -> bool:
        return self._proc.poll() is None

    def terminate(self) -> int | None:
        """Stop the child: terminate, wait, and kill if it ignores the signal."""
        _close_quietly(self._proc.stdin)
        if self._proc.poll() is None:
            logger.info("server.terminating", pid=self.pid)
            self._proc.terminate()
            try:
                self._proc.wait(timeout=self.terminate_timeout)
            except subprocess.TimeoutExpired:
                logger.warning("server.kill", pid=self.pid, timeout=self.terminate_timeout)
                self._proc.kill()
                self._proc.wait(timeout=self.terminate_timeout)
        _close_quietly(self._proc.stdout)
        logger.info("server.stopped", pid=self.pid, returncode=self._proc.returncode)
        return self._proc.returncode

    def __enter__(self) -> "ServerProcess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.terminate()


def _close_quietly(stream: IO[bytes] | None) -> None:
    if stream is None:
        return
    try:
        stream.close()
    except (OSError, ValueError) as exc:
        logger.debug("server.stream_close_failed", error=str(exc))


def launch(
    workspace_dir: Path,
    installation: ServerInstallation,
    *,
    data_dir: Path | None = None,
    java_executable: str = "java",
    process_factory: ProcessFactory = subprocess.Popen,
) -> ServerProcess:
    """Start JDT LS for ``workspace_dir``; the caller owns the returned process."""
    command = build_command(
        installation,
        data_dir if data_dir is not None else workspace_dir,
        java_executable=java_executable,
    )
    logger.info("server.launching", command=command)
    try:
        proc = process_factory(
            command,
            cwd=str(workspace_dir),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as exc:
        logger.error("server.launch_failed", executable=java_executable, error=str(exc))
        raise LaunchError(f"Failed to start {java_executable}: {exc}") from exc
    logger.info("server.launched", pid=getattr(proc, "pid", None))
    return ServerProcess(proc, command)
