from typing import AsyncGenerator, Dict, List

import pytest
import pytest_asyncio
import httpx
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from drop_service.main import app
from drop_service.models import Base
from drop_service.database import get_db
from drop_service.deps import get_object_store, get_settings
from drop_service.config import Settings
from drop_service.exceptions import UpstreamError

class FakeObjectStore:
    """In-memory stand-in for ObjectStoreGateway."""

    def __init__(self, bucket: str = "drop-test"):
        self.bucket = bucket
        self.objects: Dict[str, int] = {}
        self.delete_attempts: List[str] = []
        self.failing_keys = set()
        self.fail_all_deletes = False
        self.presigned_uploads: List[str] = []

    async def presign_upload(self, key: str, content_type: str, expires_in: int) -> str:
        self.presigned_uploads.append(key)
        return f"https://storage.test/{self.bucket}/{key}?method=PUT&expires={expires_in}"

    async def presign_download(self, key: str, expires_in: int) -> str:
        return f"https://storage.test/{self.bucket}/{key}?method=GET&expires={expires_in}"

    async def object_exists(self, key: str) -> bool:
        return key in self.objects

    async def delete_object(self, key: str) -> None:
        self.delete_attempts.append(key)
        if self.fail_all_deletes or key in self.failing_keys:
            raise UpstreamError(f"Failed to delete object {key}: storage unreachable")
        self.objects.pop(key, None)

    async def list_objects(self, prefix: str = ""):
        return [
            {"key": key, "size": size, "last_modified": None}
            for key, size in sorted(self.objects.items())
            if key.startswith(prefix)
        ]

    async def check_bucket(self) -> bool:
        return True

@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session
        await session.rollback()

@pytest.fixture(scope="function")
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        S3_ENDPOINT_URL="https://storage.test",
        S3_REGION="us-east-1",
        S3_ACCESS_KEY_ID="test-access-key",
        S3_SECRET_ACCESS_KEY="test-secret-key",
        S3_BUCKET="drop-test",
    )

@pytest.fixture(scope="function")
def fake_store() -> FakeObjectStore:
    return FakeObjectStore()

@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession, test_settings: Settings, fake_store: FakeObjectStore) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_object_store] = lambda: fake_store

    transport = httpx.ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testdrop") as client:
        yield client

    app.dependency_overrides.clear()
