"""Tests for the maintenance scripts."""

import importlib.util
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from approval_broker.db import Store  # noqa: E402
from approval_broker.storage import ApiKeyRepository  # noqa: E402


def _load_script(name: str):
    spec = importlib.util.spec_from_file_location(f"scripts_{name}", ROOT / "scripts" / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'scripts.db'}"


def test_create_then_deactivate_key(database_url, capsys):
    api_keys = _load_script("api_keys")

    assert api_keys.main(["--database-url", database_url, "create", "--name", "ci"]) == 0
    raw_key = capsys.readouterr().out.strip()

    store = Store(database_url)
    repository = ApiKeyRepository(store)
    assert repository.authenticate(raw_key) is True
    assert repository.get_by_prefix(raw_key[:8]).name == "ci"

    assert api_keys.main(["--database-url", database_url, "deactivate", raw_key[:8]]) == 0
    assert repository.authenticate(raw_key) is False
    assert api_keys.main(["--database-url", database_url, "deactivate", raw_key[:8]]) == 1
    store.dispose()


def test_reset_database_clears_rows(database_url, capsys):
    store = Store(database_url)
    store.create_all()
    ApiKeyRepository(store).ensure("sk-reset-me")

    _load_script("reset_local_db").reset_database(database_url)

    assert ApiKeyRepository(store).authenticate("sk-reset-me") is False
    assert "reset" in capsys.readouterr().out
    store.dispose()
