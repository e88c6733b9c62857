import aiosqlite
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from companion import app
from companion.config import settings
from companion.db.sqlite import init_sqlite

USER = "user-1"


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Point every SQLite file at a temp directory."""
    d = tmp_path / "data"
    d.mkdir()
    monkeypatch.setattr(settings, "data_dir", d)
    return d


@pytest.fixture
def client(data_dir):
    with TestClient(app, headers={"X-User-Id": USER}) as c:
        yield c


@pytest_asyncio.fixture
async def db(data_dir):
    await init_sqlite(data_dir)
    async with aiosqlite.connect(data_dir / settings.sqlite_filename) as conn:
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys=ON")
        yield conn
