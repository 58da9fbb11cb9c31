import pytest
from httpx import AsyncClient
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine

import drop_service.main as main_module
from drop_service.main import create_db_and_tables

class _FailingEngine:
    def __init__(self, failures: int, real_engine=None):
        self.failures = failures
        self.attempts = 0
        self.real_engine = real_engine

    def begin(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OperationalError("connect", {}, ConnectionRefusedError("connection refused"))
        return self.real_engine.begin()

@pytest.fixture
def no_sleep(monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(main_module.asyncio, "sleep", fake_sleep)
    return delays

@pytest.mark.asyncio
async def test_ping(async_client: AsyncClient):
    response = await async_client.get("/ping")
    assert response.status_code == 200
    assert response.json() == {"ping": "pong! from Drop Service"}

@pytest.mark.asyncio
async def test_root(async_client: AsyncClient):
    response = await async_client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to the Drop Service API"}

@pytest.mark.asyncio
async def test_create_tables_retries_with_backoff(test_engine, no_sleep):
    engine = _FailingEngine(failures=2, real_engine=test_engine)

    await create_db_and_tables(engine, retries=3, backoff_seconds=0.5)

    assert engine.attempts == 3
    assert no_sleep == [0.5, 1.0]

@pytest.mark.asyncio
async def test_create_tables_gives_up(no_sleep):
    engine = _FailingEngine(failures=10)

    with pytest.raises(OperationalError):
        await create_db_and_tables(engine, retries=2, backoff_seconds=1.0)

    assert engine.attempts == 2
    assert no_sleep == [1.0]

@pytest.mark.asyncio
async def test_create_tables_with_zero_retries_still_tries_once(no_sleep):
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    try:
        await create_db_and_tables(engine, retries=0, backoff_seconds=1.0)

        async with engine.connect() as conn:
            table_names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await engine.dispose()

    assert set(table_names) == {"entries", "entry_files"}
    assert no_sleep == []

@pytest.mark.asyncio
async def test_create_tables_with_zero_retries_raises_when_unreachable(no_sleep):
    engine = _FailingEngine(failures=10)

    with pytest.raises(OperationalError):
        await create_db_and_tables(engine, retries=0, backoff_seconds=1.0)

    assert engine.attempts == 1
