from __future__ import annotations

from pathlib import Path

import pytest

from symscan.exceptions import (
    AmbiguousLauncherArtifact,
    ConfigDirMissing,
    LauncherArtifactMissing,
    ServerNotFound,
)
from symscan.locator import find_config_dir, find_launcher, locate_installation, platform_id
from tests.harness.server_layout import LAUNCHER_NAME, make_installation


@pytest.mark.parametrize(
    ("system_name", "expected"),
    [
        ("Linux", "linux"),
        ("Darwin", "mac"),
        ("Mac OS X", "mac"),
        ("Windows", "win"),
        ("FreeBSD", "linux"),
    ],
)
def test_platform_id(system_name: str, expected: str) -> None:
    assert platform_id(system_name) == expected


def test_find_launcher_ignores_platform_fragments(installation_root: Path) -> None:
    launcher = find_launcher(installation_root / "plugins")
    assert launcher.name == LAUNCHER_NAME


def test_find_launcher_missing_plugins_dir(tmp_path: Path) -> None:
    with pytest.raises(LauncherArtifactMissing) as excinfo:
        find_launcher(tmp_path / "plugins")
    assert "plugins" in str(excinfo.value)


def test_find_launcher_no_match(tmp_path: Path) -> None:
    plugins = tmp_path / "plugins"
    plugins.mkdir()
    (plugins / "org.eclipse.jdt.ls.core_1.0.jar").write_bytes(b"")
    try:
        find_launcher(plugins)
    except LauncherArtifactMissing as exc:
        assert exc.plugins_dir == plugins
    else:
        raise AssertionError("Expected LauncherArtifactMissing")


def test_find_launcher_ignores_directories_with_matching_name(tmp_path: Path) -> None:
    plugins = tmp_path / "plugins"
    (plugins / "org.eclipse.equinox.launcher_1.0.jar").mkdir(parents=True)
    with pytest.raises(LauncherArtifactMissing):
        find_launcher(plugins)


def test_find_launcher_rejects_multiple_candidates(installation_root: Path) -> None:
    plugins = installation_root / "plugins"
    (plugins / "org.eclipse.equinox.launcher_1.7.0.jar").write_bytes(b"")
    with pytest.raises(AmbiguousLauncherArtifact) as excinfo:
        find_launcher(plugins)
    assert len(excinfo.value.candidates) == 2
    assert isinstance(excinfo.value, ServerNotFound)


def test_find_config_dir_prefers_arm_variant(tmp_path: Path) -> None:
    (tmp_path / "config_linux").mkdir()
    (tmp_path / "config_linux_arm").mkdir()
    assert find_config_dir(tmp_path, "linux", "aarch64").name == "config_linux_arm"
    assert find_config_dir(tmp_path, "linux", "x86_64").name == "config_linux"


def test_find_config_dir_falls_back_from_arm(tmp_path: Path) -> None:
    (tmp_path / "config_mac").mkdir()
    assert find_config_dir(tmp_path, "mac", "arm64").name == "config_mac"


def test_find_config_dir_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigDirMissing) as excinfo:
        find_config_dir(tmp_path, "win", "AMD64")
    assert excinfo.value.config_dir == tmp_path / "config_win"


def test_locate_installation_resolves_everything(installation_root: Path) -> None:
    installation = locate_installation(installation_root, system_name="Darwin", machine="x86_64")
    assert installation.platform == "mac"
    assert installation.config_dir == installation_root.resolve() / "config_mac"
    assert installation.launcher_path.name == LAUNCHER_NAME
    assert installation.plugins_dir == installation_root.resolve() / "plugins"


def test_locate_installation_missing_platform_config(tmp_path: Path) -> None:
    root = make_installation(tmp_path / "jdtls", configs=("linux",))
    with pytest.raises(ConfigDirMissing):
        locate_installation(root, system_name="Windows", machine="AMD64")


def test_locate_installation_checks_launcher_first(tmp_path: Path) -> None:
    (tmp_path / "config_linux").mkdir()
    with pytest.raises(LauncherArtifactMissing):
        locate_installation(tmp_path, system_name="Linux", machine="x86_64")
