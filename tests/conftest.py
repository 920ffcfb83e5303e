import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from authflow.testing import HarnessContext


@pytest.fixture
def harness(tmp_path):
    """Harness context with a fresh, un-evolved sqlite database per test."""
    return HarnessContext(
        config={
            "SECRET_KEY": "appsecret",
            "AUTHFLOW_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "EVOLUTIONS_ENABLED": True,
            "EVOLUTIONS_AUTO_APPLY": False,
            "EVOLUTIONS_DEFAULT_DB": "default",
        },
        app_path=ROOT,
    )


@pytest.fixture
def app_path(tmp_path):
    """An empty application directory for hand-written evolutions."""
    path = tmp_path / "app"
    path.mkdir()
    return path


def write_evolution(app_path, revision, ups, downs="", db_name="default"):
    directory = app_path / "evolutions" / db_name
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{revision}.sql"
    path.write_text(f"# --- !Ups\n{ups}\n\n# --- !Downs\n{downs}\n", encoding="utf-8")
    return path
