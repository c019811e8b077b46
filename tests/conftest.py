"""
Shared pytest fixtures for all tests.

Provides an in-memory SQLite database per test, row factories for the
collaborator-owned tables, a fake MercadoPago gateway and a TestClient with
the database, gateway, webhook secret and rate limiter overridden.
"""

import os
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure test environment before the application reads its configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MP_ACCESS_TOKEN"] = "TEST-access-token"
os.environ["MP_WEBHOOK_SECRET"] = ""
os.environ["MP_ENVIRONMENT"] = "sandbox"

from convenio.config import CheckoutSettings  # noqa: E402
from convenio.database import Base, get_db  # noqa: E402
from convenio.domain.billing.mercadopago_service import MercadoPagoService  # noqa: E402
from convenio.domain.billing.router import (  # noqa: E402
    get_mercadopago_service,
    get_webhook_secret,
    webhook_rate_limit,
)
from convenio.main import app  # noqa: E402
from convenio.models import (  # noqa: E402
    AttendanceLocation,
    Dependent,
    PrivatePatient,
    Service,
    User,
)
from convenio.shared.time_utils import utcnow  # noqa: E402


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database shared by every connection of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# ROW FACTORIES
# ============================================================================


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(roles=("client",), **overrides) -> User:
        counter["n"] += 1
        n = counter["n"]
        data = {
            "name": f"User {n}",
            "cpf": f"{n:011d}",
            "email": f"user{n}@example.com",
            "phone": "(11) 98765-4321",
            "roles": list(roles),
            "subscription_status": "pending",
        }
        data.update(overrides)
        user = User(**data)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def active_member(make_user) -> User:
    return make_user(
        roles=("client",),
        name="Maria Souza",
        subscription_status="active",
        subscription_expiry=utcnow() + timedelta(days=200),
    )


@pytest.fixture
def pending_member(make_user) -> User:
    return make_user(roles=("client",), name="João Lima", subscription_status="pending")


@pytest.fixture
def professional(make_user) -> User:
    return make_user(roles=("professional",), name="Dr. Ana Ferreira", category_name="Quiropraxia")


@pytest.fixture
def other_professional(make_user) -> User:
    return make_user(roles=("professional",), name="Dr. Bruno Reis")


@pytest.fixture
def admin(make_user) -> User:
    return make_user(roles=("admin",), name="Admin")


@pytest.fixture
def make_dependent(db_session):
    counter = {"n": 0}

    def _make(member: User, **overrides) -> Dependent:
        counter["n"] += 1
        data = {
            "user_id": member.id,
            "name": f"Dependent {counter['n']}",
            "cpf": f"9{counter['n']:010d}",
            "subscription_status": "pending",
        }
        data.update(overrides)
        dependent = Dependent(**data)
        db_session.add(dependent)
        db_session.commit()
        db_session.refresh(dependent)
        return dependent

    return _make


@pytest.fixture
def private_patient(db_session, professional) -> PrivatePatient:
    patient = PrivatePatient(
        professional_id=professional.id, name="Carlos Private", phone="11 91234-5678"
    )
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def service(db_session) -> Service:
    service = Service(name="Consulta Quiropraxia", base_price=Decimal("150.00"))
    db_session.add(service)
    db_session.commit()
    db_session.refresh(service)
    return service


@pytest.fixture
def location(db_session, professional) -> AttendanceLocation:
    location = AttendanceLocation(
        professional_id=professional.id, name="Clínica Centro", is_default=True
    )
    db_session.add(location)
    db_session.commit()
    db_session.refresh(location)
    return location


# ============================================================================
# GATEWAY / SETTINGS FIXTURES
# ============================================================================


@pytest.fixture
def checkout_settings() -> CheckoutSettings:
    return CheckoutSettings(
        frontend_url="https://app.example.com",
        notification_url="https://api.example.com/api/webhook/mercadopago",
        environment="sandbox",
        subscription_price=Decimal("250.00"),
        dependent_price=Decimal("50.00"),
        agenda_access_price=Decimal("24.99"),
        agenda_default_duration_days=30,
    )


@pytest.fixture
def gateway() -> MagicMock:
    """MercadoPago client double; get_payment is configured per test"""
    mock = MagicMock(spec=MercadoPagoService)
    mock.create_preference = AsyncMock(
        return_value={
            "preference_id": "pref-123",
            "checkout_url": "https://sandbox.mercadopago.com.br/checkout/pref-123",
        }
    )
    mock.get_payment = AsyncMock()
    return mock


@pytest.fixture
def approved_payment():
    """Gateway payment payload as returned by GET /v1/payments/{id}"""

    def _make(token: str, payment_id: str = "987654321", status: str = "approved") -> dict:
        return {
            "id": int(payment_id),
            "status": status,
            "external_reference": token,
            "payment_type_id": "credit_card",
            "transaction_amount": 250.0,
        }

    return _make


# ============================================================================
# HTTP CLIENT
# ============================================================================


@pytest.fixture
def client(db_session, gateway):
    def override_get_db():
        yield db_session

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mercadopago_service] = lambda: gateway
    app.dependency_overrides[get_webhook_secret] = lambda: None
    app.dependency_overrides[webhook_rate_limit] = no_rate_limit

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Identity headers as forwarded by the upstream gateway"""

    def _make(user: User, role: str) -> dict:
        return {"X-User-Id": str(user.id), "X-User-Role": role}

    return _make
