"""Pytest configuration and fixtures."""

import os

# Keep the app's own engine off the development database file
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from restocore.core.rbac import ActorContext, StaffRole
from restocore.core.security import create_access_token
from restocore.db.base import Base
from restocore.db.session import enable_sqlite_foreign_keys, get_db
from restocore.main import app
# Import all models to ensure they're registered with Base.metadata
from restocore.models import *
from restocore.services.notification_service import ConnectionManager, OrderNotifier

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from restocore.core.rate_limit import limiter
    limiter.enabled = False
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def notifier() -> OrderNotifier:
    """A notifier with its own manager and no event loop: messages are queued."""
    return OrderNotifier(ConnectionManager())


# ===== Catalog =====

@pytest.fixture
def store(db_session: Session) -> Store:
    """Store with 7% VAT and 10% service charge."""
    store = Store(
        name="Test Bistro",
        slug="test-bistro",
        currency="USD",
        vat_rate=Decimal("0.07"),
        service_charge_rate=Decimal("0.10"),
    )
    db_session.add(store)
    db_session.commit()
    db_session.refresh(store)
    return store


@pytest.fixture
def other_store(db_session: Session) -> Store:
    store = Store(name="Other Place", slug="other-place", currency="USD")
    db_session.add(store)
    db_session.commit()
    db_session.refresh(store)
    return store


@pytest.fixture
def burger(db_session: Session, store: Store) -> MenuItem:
    item = MenuItem(store_id=store.id, name="Burger", base_price=Decimal("12.50"))
    item.options = [
        CustomizationOption(name="Extra cheese", additional_price=Decimal("1.50")),
        CustomizationOption(name="Bacon", additional_price=Decimal("2.00")),
    ]
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def steak(db_session: Session, store: Store) -> MenuItem:
    item = MenuItem(store_id=store.id, name="Steak", base_price=Decimal("50.00"))
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def soda(db_session: Session, store: Store) -> MenuItem:
    item = MenuItem(store_id=store.id, name="Soda", base_price=Decimal("3.00"))
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


# ===== Actors =====

@pytest.fixture
def owner(store: Store) -> ActorContext:
    return ActorContext(user_id="owner-1", role=StaffRole.OWNER, store_id=store.id)


@pytest.fixture
def admin(store: Store) -> ActorContext:
    return ActorContext(user_id="admin-1", role=StaffRole.ADMIN, store_id=store.id)


@pytest.fixture
def cashier(store: Store) -> ActorContext:
    return ActorContext(user_id="cashier-1", role=StaffRole.CASHIER, store_id=store.id)


@pytest.fixture
def server(store: Store) -> ActorContext:
    return ActorContext(user_id="server-1", role=StaffRole.SERVER, store_id=store.id)


@pytest.fixture
def chef(store: Store) -> ActorContext:
    return ActorContext(user_id="chef-1", role=StaffRole.CHEF, store_id=store.id)


def make_headers(actor: ActorContext) -> dict:
    token = create_access_token(
        data={"sub": actor.user_id, "role": actor.role.value, "store_id": actor.store_id}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_headers(owner: ActorContext) -> dict:
    return make_headers(owner)


@pytest.fixture
def admin_headers(admin: ActorContext) -> dict:
    return make_headers(admin)


@pytest.fixture
def cashier_headers(cashier: ActorContext) -> dict:
    return make_headers(cashier)


@pytest.fixture
def server_headers(server: ActorContext) -> dict:
    return make_headers(server)


@pytest.fixture
def chef_headers(chef: ActorContext) -> dict:
    return make_headers(chef)


@pytest.fixture
def outsider_headers(other_store: Store) -> dict:
    """Owner of a different store."""
    return make_headers(ActorContext(user_id="owner-9", role=StaffRole.OWNER, store_id=other_store.id))


@pytest.fixture
def owner_token(owner: ActorContext) -> str:
    """Raw bearer token, for clients that pass it in the query string."""
    return make_headers(owner)["Authorization"].split(" ", 1)[1]
