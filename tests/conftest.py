import logging
import os
import sys

import pytest

# ``fakes`` lives beside the tests; the package may not be installed
_HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, _HERE)
sys.path.insert(1, os.path.dirname(_HERE))

from solfinder import config, search  # noqa: E402
from solfinder.logging_utils import reset_throttle  # noqa: E402

from fakes import FakeGateway  # noqa: E402

_ENV_VARS = (
    "HELIUS_API_KEY",
    "HELIUS_API_TOKEN",
    "SOLANA_RPC_URL",
    "HELIUS_RPC_URL",
    "TOKEN_LIST_URL",
    "RETRY_MAX",
    "SCAN_BATCH_SIZE",
    "RESULT_CAP",
    "FRESHNESS_WINDOW_HOURS",
)


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config.reset_settings()
    search.set_engine(None)
    reset_throttle()
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    config.reset_settings()
    search.set_engine(None)
    reset_throttle()


@pytest.fixture
def gateway():
    return FakeGateway()


async def _no_sleep(_delay):
    return None


@pytest.fixture
def no_sleep():
    return _no_sleep
