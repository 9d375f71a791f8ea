from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from symscan.log_config import configure_logging
from tests.harness.server_layout import make_installation


@pytest.fixture(autouse=True)
def _quiet_logging():
    configure_logging("WARNING")
    yield


@pytest.fixture
def installation_root(tmp_path: Path) -> Path:
    return make_installation(tmp_path / "jdtls")
