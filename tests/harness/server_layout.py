from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

FAKE_SERVER = Path(__file__).resolve().with_name("fake_jdtls.py")
LAUNCHER_NAME = "org.eclipse.equinox.launcher_1.0.0.jar"

SAMPLE_SOURCE = (
    "package demo;\n"
    "\n"
    "public class Main {\n"
    "    public String greet(String name) {\n"
    '        return "Hello, " + name;\n'
    "    }\n"
    "\n"
    "    public static void main(String[] args) {\n"
    '        System.out.println(new Main().greet("world"));\n'
    "    }\n"
    "}\n"
)

HELPER_SOURCE = (
    "package demo;\n"
    "\n"
    "public class Helper {\n"
    "    public String welcome() {\n"
    '        return new Main().greet("helper");\n'
    "    }\n"
    "}\n"
)


def make_installation(root: Path, *, configs: tuple[str, ...] = ("linux", "mac", "win")) -> Path:
    plugins = root / "plugins"
    plugins.mkdir(parents=True, exist_ok=True)
    (plugins / LAUNCHER_NAME).write_bytes(b"")
    (plugins / "org.eclipse.equinox.launcher.gtk.linux.x86_64_1.2.1000.jar").write_bytes(b"")
    for name in configs:
        (root / f"config_{name}").mkdir(exist_ok=True)
    return root


def write_sample_repo(root: Path) -> Path:
    source = root / "src" / "demo" / "Main.java"
    source.parent.mkdir(parents=True, exist_ok=True)
    source.write_text(SAMPLE_SOURCE, encoding="utf-8")
    source.with_name("Helper.java").write_text(HELPER_SOURCE, encoding="utf-8")
    return root


def scripted_process_factory(mode: str = "ok", *, log_path: Path | None = None):
    """Popen replacement that runs the scripted server instead of java.

    Launch commands and started children are kept on ``factory.commands``
    and ``factory.processes`` for inspection.
    """
    commands: list[list[str]] = []
    processes: list[subprocess.Popen] = []

    def _factory(command, **kwargs):
        commands.append(list(command))
        env = dict(os.environ)
        env["FAKE_JDTLS_MODE"] = mode
        if log_path is not None:
            env["FAKE_JDTLS_LOG"] = str(log_path)
        proc = subprocess.Popen([sys.executable, str(FAKE_SERVER)], env=env, **kwargs)
        processes.append(proc)
        return proc

    _factory.commands = commands  # type: ignore[attr-defined]
    _factory.processes = processes  # type: ignore[attr-defined]
    return _factory
