import os

# 앱 import 전에 테스트용 설정 주입
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DID_SIGNING_SECRET", "test-did-secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")

from datetime import datetime, timedelta, timezone

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from starledger.core.security import create_access_token
from starledger.database.connection import build_engine
from starledger.models.base import Base
from starledger.models import stars, share, referral  # noqa: F401


class FrozenClock:
    """테스트용 고정 시계 (UTC)"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def clock():
    # 2025-03-10 10:00 (UTC+7)
    return FrozenClock(datetime(2025, 3, 10, 3, 0, tzinfo=timezone.utc))


@pytest.fixture
def app(db_session):
    from starledger.main import create_app

    app = create_app()
    app.container.repositories.get_db.override(providers.Object(db_session))
    yield app
    app.container.repositories.get_db.reset_override()


@pytest.fixture
def client(app):
    """테스트 클라이언트 픽스처"""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """계정 ID로 Bearer 헤더 생성"""

    def _headers(account_id: str) -> dict:
        token = create_access_token({"user_id": account_id, "sub": f"{account_id}@example.com"})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def device_headers():
    """서명된 디바이스 쿠키 헤더 생성"""
    from starledger.config import settings
    from starledger.core.device_id import sign_device_id

    def _headers(device_id: str) -> dict:
        return {"Cookie": f"{settings.DID_COOKIE_NAME}={sign_device_id(device_id)}"}

    return _headers
