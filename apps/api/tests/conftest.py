"""
Pytest configuration and fixtures

Every test gets a fresh in-memory SQLite schema (created and dropped around
the test) and, where it needs Redis, an in-memory FakeRedis. Nothing touches
a real database or Redis server.
"""
import fnmatch
import os
import sys
from datetime import date, timedelta
from uuid import uuid4

# Must be set before anything imports core.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters-long")
os.environ.setdefault("ENVIRONMENT", "test")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402

from core.database import Base, SessionLocal, engine  # noqa: E402
from models import ActivityTracker, CourseOffering, Facilitator, Manager, Module, User  # noqa: E402
from services.notification_queue import NotificationQueue  # noqa: E402
from services.notification_service import NotificationService  # noqa: E402


class FakeRedis:
    """Minimal in-memory Redis mock: lists plus string keys with TTLs."""

    def __init__(self):
        self._store: dict = {}
        self._lists: dict = {}
        self._ttls: dict = {}

    # Lists
    def lpush(self, key, *values):
        items = self._lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    def rpop(self, key):
        items = self._lists.get(key)
        if not items:
            return None
        return items.pop()

    def brpop(self, keys, timeout=0):
        # Never blocks: an empty list behaves like an expired timeout
        if isinstance(keys, str):
            keys = [keys]
        for key in keys:
            value = self.rpop(key)
            if value is not None:
                return key, value
        return None

    def llen(self, key):
        return len(self._lists.get(key, []))

    # Strings
    def get(self, key):
        return self._store.get(key)

    def setex(self, key, ttl, value):
        self._store[key] = value
        self._ttls[key] = ttl

    def delete(self, *keys):
        deleted = 0
        for k in keys:
            if self._store.pop(k, None) is not None:
                deleted += 1
            self._ttls.pop(k, None)
        return deleted

    def keys(self, pattern="*"):
        return [k for k in self._store if fnmatch.fnmatch(k, pattern)]

    def ping(self):
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def queue(fake_redis):
    return NotificationQueue(client=fake_redis)


@pytest.fixture
def notification_service(queue):
    return NotificationService(queue=queue)


@pytest.fixture(scope="function")
def db_session():
    """Fresh schema per test; dropped afterwards so nothing leaks between tests."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db_session):
    def _make(role="facilitator", first_name="Test", last_name="User", is_active=True):
        user = User(
            email=f"{role}_{uuid4().hex[:8]}@example.com",
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture
def make_manager(db_session, make_user):
    def _make(first_name="Morgan", is_active=True, user_active=True):
        user = make_user("manager", first_name=first_name, last_name="Manager", is_active=user_active)
        manager = Manager(user=user, is_active=is_active)
        db_session.add(manager)
        db_session.commit()
        return manager
    return _make


@pytest.fixture
def make_facilitator(db_session, make_user):
    def _make(first_name="Alex", is_active=True):
        user = make_user("facilitator", first_name=first_name, last_name="Facilitator")
        facilitator = Facilitator(user=user, employee_id=f"EMP-{uuid4().hex[:6]}", is_active=is_active)
        db_session.add(facilitator)
        db_session.commit()
        return facilitator
    return _make


@pytest.fixture
def make_offering(db_session):
    def _make(facilitator, code=None, name="Introduction to Programming", is_active=True):
        module = Module(code=code or f"CS{uuid4().hex[:4].upper()}", name=name)
        offering = CourseOffering(module=module, facilitator=facilitator, intake_period="FT", is_active=is_active)
        db_session.add(offering)
        db_session.commit()
        return offering
    return _make


@pytest.fixture
def make_log(db_session):
    """Persist an activity log; week dates default to a Monday-based 2025 calendar."""
    def _make(offering, week_number=1, week_start_date=None, week_end_date=None, **fields):
        start = week_start_date or date(2025, 1, 6) + timedelta(weeks=week_number - 1)
        log = ActivityTracker(
            allocation_id=offering.id,
            facilitator_id=offering.facilitator_id,
            week_number=week_number,
            week_start_date=start,
            week_end_date=week_end_date or start + timedelta(days=7),
            **fields,
        )
        db_session.add(log)
        db_session.commit()
        db_session.refresh(log)
        return log
    return _make
