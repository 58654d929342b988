"""
Ortak test fixture'ları

Hiçbir test ağa çıkmaz: adapter'lara istekleri kaydeden ve sıradaki
hazır cevabı dönen FakeSession verilir.
"""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.security import hash_token
from database.connection import Base
from database.models import ApiToken, MarketplaceConnection
from services.sync_orchestrator import SyncOrchestrator


class FakeResponse:
    """requests.Response yerine geçen minimal cevap"""

    def __init__(self, status_code=200, json_data=None, text=None, headers=None, links=None):
        self.status_code = status_code
        self._json_data = json_data
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ""
        self.text = text
        self.content = text.encode("utf-8")
        self.headers = headers or {}
        self.links = links or {}

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json_data is not None:
            return self._json_data
        return json.loads(self.text)


class FakeSession:
    """İstekleri kaydeder, sıradaki cevabı döner"""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []
        self.headers = {}
        self.auth = None

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method.upper(), "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Beklenmeyen istek: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def put(self, url, **kwargs):
        return self.request("PUT", url, **kwargs)


@pytest.fixture
def settings():
    return Settings(
        http_max_retries=0,
        http_retry_delay=0,
        token_cache_enabled=False,
        batch_concurrency=3,
        ai_api_key="",
        scheduler_enabled=False,
    )


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def orchestrator(db_session, settings, fake_session):
    return SyncOrchestrator(db_session, settings=settings, session_factory=lambda: fake_session)


@pytest.fixture
def api_token(db_session):
    token = "test-token-123"
    db_session.add(ApiToken(user_id="user-1", name="test", token_hash=hash_token(token)))
    db_session.commit()
    return token


def make_connection(db, marketplace, credentials, user_id="user-1", is_active=True):
    connection = MarketplaceConnection(
        user_id=user_id,
        marketplace=marketplace,
        credentials=credentials,
        is_active=is_active,
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


TRENDYOL_CREDENTIALS = {"seller_id": "12345", "api_key": "ty-key", "api_secret": "ty-super-secret"}
HEPSIBURADA_CREDENTIALS = {"merchant_id": "m-1", "username": "hb-user", "password": "hb-super-secret"}
IKAS_CREDENTIALS = {"client_id": "ikas-client", "client_secret": "ikas-super-secret", "store_name": "dev-listele"}
N11_CREDENTIALS = {"app_key": "n11-key", "app_secret": "n11-super-secret"}
AMAZON_CREDENTIALS = {"seller_id": "A-1", "client_id": "lwa-client", "client_secret": "lwa-super-secret", "refresh_token": "rt-super-secret"}
