"""
Shared pytest fixtures: a throwaway SQLite database, stores, a controllable
clock and ready-made actors.
"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from .cache import TTLCache
from .config import Config
from .database import ListingStore, UserStore, init_db
from .events import EventBus
from .lifecycle import ListingLifecycle
from .policy import Actor
from .records import User

TEST_SECRET = "test-identity-secret-0123456789abcdef0123456789"


class FakeClock:
    """Callable returning a fixed, manually advanced UTC time."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "bazaar.db")
    monkeypatch.setattr(Config, "DB_PATH", path)
    init_db(path)
    return path


@pytest.fixture
def listing_store(db_path):
    return ListingStore(db_path)


@pytest.fixture
def user_store(db_path):
    return UserStore(db_path)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache():
    return TTLCache(ttl_seconds=300)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def lifecycle(listing_store, user_store, cache, events, clock):
    return ListingLifecycle(listing_store, users=user_store, cache=cache, events=events, clock=clock)


@pytest.fixture
def seller_a():
    return Actor(identity="user_a", role="seller", email="a@example.com")


@pytest.fixture
def seller_b():
    return Actor(identity="user_b", role="user", email="b@example.com")


@pytest.fixture
def admin():
    return Actor(identity="user_admin", role="admin", email="admin@example.com")


def listing_payload(**overrides):
    payload = {
        "title": "Wooden coffee table",
        "description": "Solid mahogany, a few scratches on one leg.",
        "price": 4500,
        "is_donation": False,
        "seller_phone": "0712345678",
        "category": "Furniture & Home Decor",
        "location": "Nairobi, Westlands",
        "images": ["https://img.example.com/table.jpg"],
    }
    payload.update(overrides)
    return payload


def make_user(user_id: str, role: str = "user", created_at: datetime = None, **fields) -> User:
    created = created_at or datetime(2024, 1, 1, tzinfo=timezone.utc)
    return User(id=user_id, role=role, created_at=created, updated_at=created, **fields)


def make_token(sub: str, secret: str = TEST_SECRET, expires_in: int = 3600, **claims) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": sub, "iat": now, "exp": now + timedelta(seconds=expires_in), **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_header(sub: str, **claims) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, **claims)}"}
