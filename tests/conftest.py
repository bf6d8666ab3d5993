import os
import time

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LIVE_BACKEND"] = "memory"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_JSON"] = "false"

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.database import SessionLocal, engine
from app.main import app
from app.models import Base, Profile
from app.services import LocalBroker, MessagingGateway, get_gateway
from app.services.live_channel import set_broker

ALICE = "user_alice"
BOB = "user_bob"
CAROL = "user_carol"
DAVE = "user_dave"


def make_token(user_id: str, secret: str = "test-secret", expires_in: int = 3600) -> str:
    return jwt.encode(
        {"sub": user_id, "exp": int(time.time()) + expires_in},
        secret,
        algorithm="HS256"
    )


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def db_session():
    """Fresh schema on the shared in-memory SQLite connection"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def profiles(db_session):
    """Alice, Bob and Carol have profiles; Dave does not"""
    rows = [
        Profile(user_id=ALICE, full_name="Alice Menon", avatar_url="https://img.example/alice.png"),
        Profile(user_id=BOB, full_name="Bob Iyer", role="hod"),
        Profile(user_id=CAROL, full_name="Carol Das", role="club_admin"),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {p.user_id: p for p in rows}


@pytest.fixture
def broker():
    broker = LocalBroker()
    set_broker(broker)

    yield broker

    set_broker(None)


@pytest.fixture
def gateway(db_session, broker):
    return MessagingGateway(SessionLocal, broker)


@pytest.fixture
def client(gateway):
    app.dependency_overrides[get_gateway] = lambda: gateway

    yield TestClient(app)

    app.dependency_overrides.clear()
