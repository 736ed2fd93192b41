"""
Pytest configuration and fixtures for the Reserva API tests.

Every test gets a fresh in-memory SQLite database shared by all sessions
through a StaticPool, so the HTTP client and the test body see the same data.
"""
import os
import pytest
from decimal import Decimal
from typing import Callable, Generator, List

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from app.core.security import create_access_token  # noqa: E402
from app.db.session import build_engine, get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Consultant, Pack, Product, Profile, ProfileRole  # noqa: E402
from app.services.notification import NotificationEvent, feed  # noqa: E402


@pytest.fixture(name="engine")
def engine_fixture() -> Generator[Engine, None, None]:
    engine = build_engine("sqlite://", poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine: Engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine: Engine) -> Callable[[], Session]:
    return lambda: Session(engine)


@pytest.fixture(name="client")
def client_fixture(engine: Engine) -> Generator[TestClient, None, None]:
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_profile(session: Session, email: str, role: ProfileRole = ProfileRole.CUSTOMER) -> Profile:
    profile = Profile(email=email, full_name=email.split("@")[0].title(), role=role)
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile


def bearer(profile: Profile) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': profile.email})}"}


@pytest.fixture
def auth_headers() -> Callable[[Profile], dict]:
    return bearer


@pytest.fixture
def customer(session: Session) -> Profile:
    return make_profile(session, "customer@example.com")


@pytest.fixture
def other_customer(session: Session) -> Profile:
    return make_profile(session, "other@example.com")


@pytest.fixture
def admin(session: Session) -> Profile:
    return make_profile(session, "admin@example.com", ProfileRole.ADMIN)


@pytest.fixture
def oil(session: Session) -> Product:
    product = Product(name="Herbal Oil", slug="herbal-oil", current_price=Decimal("10.00"), stock=5)
    session.add(product)
    session.commit()
    session.refresh(product)
    return product


@pytest.fixture
def soap(session: Session) -> Product:
    product = Product(name="Sandalwood Soap", slug="sandalwood-soap", current_price=Decimal("4.50"), stock=10)
    session.add(product)
    session.commit()
    session.refresh(product)
    return product


@pytest.fixture
def pack(session: Session) -> Pack:
    pack = Pack(name="Daily Care Pack", price=Decimal("12.25"), stock=3)
    session.add(pack)
    session.commit()
    session.refresh(pack)
    return pack


@pytest.fixture
def consultant(session: Session) -> Consultant:
    consultant = Consultant(full_name="Asha Rao", email="asha@example.com")
    session.add(consultant)
    session.commit()
    session.refresh(consultant)
    return consultant


@pytest.fixture
def feed_events() -> Generator[Callable[[int], List[NotificationEvent]], None, None]:
    """Subscribe to the notification feed; returns the list events land in."""
    unsubscribers = []

    def listen(profile_id: int) -> List[NotificationEvent]:
        received: List[NotificationEvent] = []
        unsubscribers.append(feed.subscribe(profile_id, received.append))
        return received

    yield listen
    for unsubscribe in unsubscribers:
        unsubscribe()
