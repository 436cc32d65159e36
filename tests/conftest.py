"""테스트 인프라 — 임시 SQLite DB, 세션, httpx 클라이언트 픽스처.

Test infrastructure — Throwaway SQLite DB (aiosqlite), session, and httpx
client fixtures. Every test gets its own database file and upload directory
under ``tmp_path``; storage always runs in local mode.
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from urllib.parse import urlsplit

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from issuedesk.config import settings
from issuedesk.database import Base, get_db
from issuedesk.main import app
from issuedesk.models import *  # noqa: F401,F403 — register all models with metadata
from issuedesk.schemas.auth import ANONYMOUS, Caller, CallerRole
from issuedesk.utils.jwt import create_access_token

REPORTER_ID = "user-reporter"
OTHER_ID = "user-other"
ADMIN_ID = "user-admin"


# ---------------------------------------------------------------------------
# 환경: 로컬 스토리지 (Local storage under tmp_path)
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def local_storage(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """AWS 키를 비워 로컬 모드로 고정하고 업로드 디렉토리를 격리합니다."""
    uploads = tmp_path / "uploads"
    monkeypatch.setattr(settings, "AWS_ACCESS_KEY_ID", "")
    monkeypatch.setattr(settings, "AWS_S3_BUCKET", "")
    monkeypatch.setattr(settings, "LOCAL_UPLOADS_DIR", str(uploads))
    return uploads


# ---------------------------------------------------------------------------
# Function-scoped: 엔진, 세션, 클라이언트
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """테스트별 SQLite 파일 DB 엔진. 스키마를 생성합니다."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'issuedesk.db'}", echo=False)

    @event.listens_for(eng.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """서비스 직접 호출용 세션 (Session for service-level tests)."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncClient, None]:
    """FastAPI 테스트 클라이언트 — 요청마다 새 세션을 사용합니다."""
    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# 호출자 / 토큰 (Callers and tokens)
# ---------------------------------------------------------------------------
@pytest.fixture
def reporter() -> Caller:
    return Caller(user_id=REPORTER_ID, role=CallerRole.GENERAL)


@pytest.fixture
def other_user() -> Caller:
    return Caller(user_id=OTHER_ID, role=CallerRole.EMPLOYEE)


@pytest.fixture
def admin() -> Caller:
    return Caller(user_id=ADMIN_ID, role=CallerRole.ADMIN)


@pytest.fixture
def anonymous() -> Caller:
    return ANONYMOUS


def make_token(user_id: str, role: str) -> str:
    """테스트용 JWT 액세스 토큰을 생성합니다."""
    return create_access_token({"sub": user_id, "role": role})


@pytest.fixture
def reporter_token() -> str:
    return make_token(REPORTER_ID, "GENERAL")


@pytest.fixture
def other_token() -> str:
    return make_token(OTHER_ID, "EMPLOYEE")


@pytest.fixture
def admin_token() -> str:
    return make_token(ADMIN_ID, "ADMIN")


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# 헬퍼: 테스트 데이터 (Payload and upload helpers)
# ---------------------------------------------------------------------------
def issue_payload(**overrides) -> dict:
    data = {
        "title": "Pothole",
        "description": "Deep hole on Main St",
        "location": "Main St",
        "address": "12 Main St",
        "district": "Colombo",
        "province": "Western",
        "mobile_no": "0711234567",
        "whatsapp_no": "0711234567",
    }
    data.update(overrides)
    return data


async def upload_image(client: AsyncClient, filename: str = "photo.png", content_type: str = "image/png") -> str:
    """presigned URL 발급 후 로컬 업로드까지 수행하고 temp file_url을 반환합니다."""
    res = await client.post(
        "/api/v1/app/storage/presigned-url",
        json={"filename": filename, "content_type": content_type},
    )
    assert res.status_code == 200, res.text
    data = res.json()
    put = await client.put(urlsplit(data["upload_url"]).path, content=b"\x89PNG fake image bytes")
    assert put.status_code == 200, put.text
    return data["file_url"]
