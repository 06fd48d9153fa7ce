import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import models
from database import Base
from services import token_usage_service
from services.token_usage_service import TokenUsageService, estimate_tokens

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_token_usage.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="module", autouse=True)
def setup_module():
    yield
    if os.path.exists("./test_token_usage.db"):
        os.remove("./test_token_usage.db")


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens(None) == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_first_usage_creates_ledger_with_plan_limit(db_session):
    db_session.add(models.Plan(id="pro", name="Pro", token_limit_usage=50000))
    db_session.add(models.User(id="u1", email="admin@brify.ai", current_plan_id="pro"))
    db_session.commit()

    TokenUsageService(db_session).track_usage("u1", 120, "sync_embedding")

    row = db_session.query(models.UserTokensUsage).filter_by(user_id="u1").one()
    assert row.tokens_used == 120
    assert row.total_tokens == 50000
    assert row.operation == "sync_embedding"


def test_usage_accumulates(db_session, monkeypatch):
    monkeypatch.setattr(token_usage_service.config, "DEFAULT_TOKEN_LIMIT", 1000)
    service = TokenUsageService(db_session)

    service.track_usage("u2", 10)
    service.track_usage("u2", 15)

    db_session.expire_all()
    row = db_session.query(models.UserTokensUsage).filter_by(user_id="u2").one()
    assert row.tokens_used == 25
    assert row.total_tokens == 1000


def test_zero_tokens_or_missing_user_is_ignored(db_session):
    service = TokenUsageService(db_session)
    service.track_usage(None, 10)
    service.track_usage("u3", 0)
    assert db_session.query(models.UserTokensUsage).count() == 0


def test_storage_increments_add_up(db_session):
    db_session.add(models.User(id="u1", email="admin@brify.ai", used_storage_bytes=100))
    db_session.commit()
    service = TokenUsageService(db_session)

    assert service.increment_storage("u1", 3072) is True
    assert service.increment_storage("u1", 3072) is True

    db_session.expire_all()
    assert db_session.query(models.User).filter_by(id="u1").one().used_storage_bytes == 100 + 2 * 3072


def test_storage_for_unknown_user_reports_false(db_session):
    assert TokenUsageService(db_session).increment_storage("ghost", 10) is False
