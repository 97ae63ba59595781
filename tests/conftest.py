import asyncio
import os
from datetime import datetime, timedelta, timezone

# Configure before calnotify.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("DAPR_ENABLED", "false")

import pytest
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from calnotify import config
from calnotify.models import Event, NotificationStatus, User, UserPreference
from calnotify.providers.channel_sender import ChannelResult
from calnotify.services.notification_store import NotificationStore
from calnotify.utils.metrics import MetricsCollector

NOW = datetime(2026, 3, 10, 9, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(session):
    return NotificationStore(session)


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def make_user(session):
    def _make_user(user_id="user-1", email=None, **preferences):
        user = User(id=user_id, email=email or f"{user_id}@example.com", name=user_id)
        session.add(user)
        if preferences:
            session.add(UserPreference(user_id=user_id, **preferences))
        session.commit()
        return user_id

    return _make_user


@pytest.fixture
def make_event(session):
    def _make_event(user_id="user-1", start_time=NOW, title="Team sync", **fields):
        event = Event(user_id=user_id, title=title, start_time=start_time, **fields)
        session.add(event)
        session.commit()
        session.refresh(event)
        return event.id

    return _make_event


@pytest.fixture
def make_notification(store):
    def _make_notification(**overrides):
        fields = {
            "user_id": "user-1",
            "kind": "system_notification",
            "title": "Heads up",
            "body": "Something is about to happen",
            "scheduled_at": NOW - timedelta(minutes=1),
            "channels": ["push"],
            "max_retries": 3,
        }
        fields.update(overrides)
        return store.create(**fields)

    return _make_notification


@pytest.fixture
def mark_sent(store):
    def _mark_sent(notification, sent_at=NOW):
        assert store.transition(
            notification.id,
            [NotificationStatus.PENDING],
            status=NotificationStatus.SENT.value,
            sent_at=sent_at,
        )
        store.session.refresh(notification)
        return notification

    return _mark_sent


class FakeSender:
    """Channel sender double; records calls and returns scripted outcomes."""

    def __init__(self, failing_channels=(), error=None, delay=0.0, on_send=None):
        self.failing_channels = set(failing_channels)
        self.error = error
        self.delay = delay
        self.on_send = on_send
        self.calls = []

    async def send(self, channels, title, body, priority, *, user_id=None, metadata=None):
        self.calls.append(
            {"channels": list(channels), "title": title, "body": body, "priority": priority, "user_id": user_id}
        )
        if self.on_send is not None:
            self.on_send()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {
            channel: ChannelResult(False, f"{channel} unavailable")
            if channel in self.failing_channels
            else ChannelResult(True)
            for channel in channels
        }


class FakePublisher:
    def __init__(self):
        self.failures = []

    def publish_notification_failed(self, failure):
        self.failures.append(failure)
        return {"success": True}


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def fake_sender_class():
    return FakeSender


def make_token(user_id, **claims):
    payload = {"sub": user_id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    payload.update(claims)
    return jwt.encode(payload, config.AUTH_SECRET, algorithm=config.AUTH_ALGORITHM)


@pytest.fixture
def auth_headers():
    def _auth_headers(user_id="user-1", **claims):
        return {"Authorization": f"Bearer {make_token(user_id, **claims)}"}

    return _auth_headers
