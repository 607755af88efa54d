import os
import pathlib
import sys

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import simplelicense`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from simplelicense.fields import FieldRegistry  # noqa: E402
from simplelicense.keys import generate_key_pair  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless SIMPLELICENSE_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('SIMPLELICENSE_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set SIMPLELICENSE_RUN_SLOW=1 to enable'))


@pytest.fixture(scope="session")
def key_pair():
    """(private_pem, public_pem) shared by the whole session; RSA keygen is slow."""
    return generate_key_pair(2048)


@pytest.fixture(scope="session")
def other_key_pair():
    return generate_key_pair(2048)


@pytest.fixture
def registry():
    return FieldRegistry.with_defaults()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SIMPLELICENSE_") and name != "SIMPLELICENSE_RUN_SLOW":
            monkeypatch.delenv(name, raising=False)
