from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import Mapping, TypeAlias
import tomllib

from symscan.exceptions import ConfigError, ConfigMissing

DEFAULT_CONFIG_NAME = "symscan.toml"

REPO_PATH = "repo.path"
JDTLS_HOME = "jdtls.home"
FILE_PATH = "file.path"
TIMEOUT_SECONDS = "timeout.seconds"
JAVA_EXECUTABLE = "java.executable"
DATA_DIR = "data.dir"
LANGUAGE_ID = "language.id"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


@dataclass(frozen=True)
class ScanSettings:
    repo_path: Path
    server_home: Path
    file_path: Path | None
    timeout_seconds: float
    java_executable: str = "java"
    data_dir: Path | None = None
    language_id: str = "java"

    @property
    def target_path(self) -> Path:
        if self.file_path is None:
            raise ConfigMissing(FILE_PATH)
        return resolve_target(self.repo_path, self.file_path)


def resolve_target(repo_path: Path, file_path: Path) -> Path:
    """Join a repository-relative file path onto the repository root.

    ``/src/Main.java`` is treated as relative, matching how property files
    usually spell it.
    """
    if file_path.is_absolute() and file_path.is_relative_to(repo_path):
        return file_path
    relative = str(file_path).lstrip("/\\")
    return repo_path / relative


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def config_file(root: Path | None = None, config_path: Path | None = None) -> Path:
    if config_path is not None:
        return config_path
    base = root if root is not None else Path.cwd()
    return base / DEFAULT_CONFIG_NAME


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    """Read the TOML table; a missing default file reads as empty.

    An explicitly named file that does not exist is a :class:`ConfigError`.
    """
    path = config_file(root, config_path)
    if config_path is not None and not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    return _load_toml(path)


def lookup(table: Mapping[str, TomlValue], dotted_key: str) -> TomlValue:
    """Resolve ``a.b`` against nested TOML tables, falling back to a flat key."""
    if dotted_key in table:
        return table[dotted_key]
    current: TomlValue = dict(table)
    for part in dotted_key.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    if isinstance(current, dict):
        return None
    return current


def merge_payload(payload: Mapping[str, TomlValue], defaults: Mapping[str, TomlValue]) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def _flatten(table: TomlTable) -> TomlTable:
    keys = (
        REPO_PATH,
        JDTLS_HOME,
        FILE_PATH,
        TIMEOUT_SECONDS,
        JAVA_EXECUTABLE,
        DATA_DIR,
        LANGUAGE_ID,
    )
    return {key: lookup(table, key) for key in keys}


def _require(values: TomlTable, key: str, source: Path | None) -> TomlValue:
    value = values.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigMissing(key, source)
    return value


def _as_timeout(value: TomlValue) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{TIMEOUT_SECONDS} must be a number, got {value!r}")
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{TIMEOUT_SECONDS} must be a number, got {value!r}") from exc
    if seconds <= 0:
        raise ConfigError(f"{TIMEOUT_SECONDS} must be positive, got {value!r}")
    return seconds


def load_settings(
    config_path: Path | None = None,
    *,
    overrides: Mapping[str, TomlValue] | None = None,
    root: Path | None = None,
    require_file: bool = True,
) -> ScanSettings:
    """Build :class:`ScanSettings` from a TOML file plus explicit overrides.

    Overrides win over file values; ``None`` overrides are ignored.
    Raises :class:`ConfigMissing` when a required key has no value.
    ``file.path`` is only required when ``require_file`` is set; workspace
    commands run without it.
    """
    source = config_file(root, config_path)
    values = merge_payload(overrides or {}, _flatten(load_config(root, config_path)))

    repo_path = Path(str(_require(values, REPO_PATH, source))).expanduser()
    server_home = Path(str(_require(values, JDTLS_HOME, source))).expanduser()
    if require_file:
        file_path: Path | None = Path(str(_require(values, FILE_PATH, source)))
    else:
        file_value = values.get(FILE_PATH)
        file_path = Path(str(file_value)) if file_value else None
    timeout_seconds = _as_timeout(_require(values, TIMEOUT_SECONDS, source))

    data_dir_value = values.get(DATA_DIR)
    data_dir = Path(str(data_dir_value)).expanduser() if data_dir_value else None
    return ScanSettings(
        repo_path=repo_path,
        server_home=server_home,
        file_path=file_path,
        timeout_seconds=timeout_seconds,
        java_executable=str(values.get(JAVA_EXECUTABLE) or "java"),
        data_dir=data_dir,
        language_id=str(values.get(LANGUAGE_ID) or "java"),
    )
