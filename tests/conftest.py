from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userdb.config import StoreConfig  # noqa: E402
from userdb.store import AccountStore  # noqa: E402

# Keeps PBKDF2 fast enough for the suite; production uses the default rounds.
TEST_HASH_ROUNDS = 1_000


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def store_config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(
        database_path=tmp_path / "userdb.sqlite3",
        hash_rounds=TEST_HASH_ROUNDS,
        stream_page_size=7,
    )


@pytest.fixture
async def store(store_config: StoreConfig):
    async with AccountStore.open(store_config) as opened:
        yield opened
