"""Repository-wide pytest configuration.

Pins the repository root on ``sys.path`` so ``custody_staking`` imports
without an editable install, and clears the configuration overrides read from
the environment so a developer shell cannot leak into the suites.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("PYTHONPATH", str(ROOT))


@pytest.fixture(autouse=True)
def _clear_custody_overrides(monkeypatch):
    for key in [
        "CUSTODY_CHAIN_ID",
        "CUSTODY_UNBONDING_PERIOD_SECONDS",
        "CUSTODY_MINIMUM_STAKE_TOKENS",
        "CUSTODY_ADMIN_ADDRESS",
    ]:
        monkeypatch.delenv(key, raising=False)
    yield
