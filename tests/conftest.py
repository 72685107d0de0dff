import json
import os

# Keep the module-level engine away from a real server during tests.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from backoffice.database import make_engine
from backoffice.entities import Customer, Product
from backoffice.errors import TransientFailure
from backoffice.events import EventEmitter
from backoffice.models import Base
from backoffice.orders import OrderLifecycleManager
from backoffice.repository import EntityRepository


class RecordingPublisher:
    """In-memory notification sink that keeps every message in order."""

    def __init__(self):
        self.messages = []

    def publish(self, topic, payload):
        self.messages.append((topic, json.loads(payload)))

    def actions(self, topic=None):
        return [m["action"] for t, m in self.messages if topic is None or t == topic]


class FlakyPublisher(RecordingPublisher):
    """Fails the first `failures` publishes, then behaves."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def publish(self, topic, payload):
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransientFailure("broker down")
        super().publish(topic, payload)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repo(db):
    return EntityRepository(db, backoff_seconds=0)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def emitter(db, publisher):
    return EventEmitter(publisher, db=db, backoff_seconds=0)


@pytest.fixture
def manager(repo, emitter):
    return OrderLifecycleManager(repo, emitter, conflict_backoff_seconds=0)


@pytest.fixture
def customer(repo):
    return repo.insert(
        Customer(
            id="cust-1",
            name="Thandi",
            surname="Nkosi",
            username="thandi.n",
            shipping_address="12 Long Street, Cape Town",
            email="thandi@example.com",
        )
    )


@pytest.fixture
def product(repo):
    return repo.insert(
        Product(
            id="prod-1",
            name="Kettle",
            description="1.7L stainless steel kettle",
            unit_price=Decimal("249.99"),
            stock_available=10,
        )
    )


@pytest.fixture
def other_product(repo):
    return repo.insert(
        Product(
            id="prod-2",
            name="Toaster",
            description="Two-slice toaster",
            unit_price=Decimal("399.50"),
            stock_available=4,
        )
    )
