"""Discovery of a JDT LS installation's launcher JAR and config directory."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from pathlib import Path

import structlog

from symscan.exceptions import (
    AmbiguousLauncherArtifact,
    ConfigDirMissing,
    LauncherArtifactMissing,
)

logger = structlog.get_logger(__name__)

LAUNCHER_PREFIX = "org.eclipse.equinox.launcher_"
LAUNCHER_SUFFIX = ".jar"
PLUGINS_DIR_NAME = "plugins"
_ARM_MACHINES = frozenset({"arm64", "aarch64"})


@dataclass(frozen=True)
class ServerInstallation:
    root: Path
    plugins_dir: Path
    config_dir: Path
    launcher_path: Path
    platform: str


def platform_id(system_name: str | None = None) -> str:
    name = (system_name if system_name is not None else platform.system()).lower()
    # "darwin" contains "win", so macOS has to be matched first.
    if "mac" in name or "darwin" in name:
        return "mac"
    if "win" in name:
        return "win"
    return "linux"


def find_launcher(plugins_dir: Path) -> Path:
    if not plugins_dir.is_dir():
        raise LauncherArtifactMissing(plugins_dir)
    candidates = [
        plugins_dir / name
        for name in sorted(os.listdir(plugins_dir))
        if name.startswith(LAUNCHER_PREFIX)
        and name.endswith(LAUNCHER_SUFFIX)
        and (plugins_dir / name).is_file()
    ]
    if not candidates:
        raise LauncherArtifactMissing(plugins_dir)
    if len(candidates) > 1:
        raise AmbiguousLauncherArtifact(plugins_dir, candidates)
    return candidates[0]


def find_config_dir(root: Path, platform_name: str, machine: str | None = None) -> Path:
    machine_name = (machine if machine is not None else platform.machine()).lower()
    names = [f"config_{platform_name}"]
    if machine_name in _ARM_MACHINES:
        names.insert(0, f"config_{platform_name}_arm")
    for name in names:
        candidate = root / name
        if candidate.is_dir():
            return candidate
    raise ConfigDirMissing(root / names[-1])


def locate_installation(
    root: Path,
    *,
    system_name: str | None = None,
    machine: str | None = None,
) -> ServerInstallation:
    root = Path(root).expanduser().resolve()
    plugins_dir = root / PLUGINS_DIR_NAME
    try:
        launcher = find_launcher(plugins_dir)
        platform_name = platform_id(system_name)
        config_dir = find_config_dir(root, platform_name, machine)
    except (LauncherArtifactMissing, AmbiguousLauncherArtifact, ConfigDirMissing) as exc:
        logger.error("server.locate_failed", root=str(root), error=str(exc))
        raise
    logger.info(
        "server.located",
        launcher=str(launcher),
        config_dir=str(config_dir),
        platform=platform_name,
    )
    return ServerInstallation(
        root=root,
        plugins_dir=plugins_dir,
        config_dir=config_dir,
        launcher_path=launcher,
        platform=platform_name,
    )
