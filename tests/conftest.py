import json
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from internhub import models  # noqa: F401
from internhub.app_setup.factory import create_app
from internhub.gateways import registry as registry_mod
from internhub.gateways.base import (
    Feature,
    GatewayProvider,
    PaymentOrderRequest,
    PaymentOrderResult,
    WebhookResult,
)
from internhub.gateways.registry import GatewayRegistry
from internhub.infra.database import Base, get_db
from internhub.models import (
    Discount,
    DiscountType,
    Internship,
    InternshipBatch,
    PaymentStatus,
    Status,
    utcnow,
)
from internhub.utils.security import require_admin, require_user

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)


class FakeGateway(GatewayProvider):
    """Passerelle en mémoire: enregistre les appels, échoue sur demande."""

    def __init__(self, name: str = "fake"):
        self.name = name
        self.calls = []
        self.initialized = 0
        self.fail_with = None
        self.status = PaymentStatus.PROCESSING
        self.verify_status = PaymentStatus.SUCCESS

    def provider_name(self) -> str:
        return self.name

    def supported_features(self):
        return frozenset(Feature)

    def initialize(self) -> None:
        self.initialized += 1

    def create_payment_order(self, request: PaymentOrderRequest) -> PaymentOrderResult:
        self.calls.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        return PaymentOrderResult(
            provider_payment_id=f"fake_{len(self.calls)}",
            redirect_url=f"https://pay.example.test/{request.payment_id}",
            status=self.status,
            raw={"id": f"fake_{len(self.calls)}"},
        )

    def verify_payment_status(self, provider_payment_id: str) -> PaymentStatus:
        return self.verify_status

    def process_webhook(self, payload: bytes, headers) -> WebhookResult:
        data = json.loads(payload or b"{}")
        status = data.get("status")
        return WebhookResult(
            event_name=data.get("type", ""),
            event_id=data.get("id"),
            payload=data,
            provider_payment_id=data.get("provider_payment_id"),
            status=PaymentStatus(status) if status else None,
            payment_id=data.get("payment_id"),
        )


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_gateway():
    return FakeGateway


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def gateways(gateway) -> GatewayRegistry:
    reg = GatewayRegistry()
    reg.register(gateway)
    return reg


@pytest.fixture()
def make_internship(db):
    def _make(price="1000", flat=None, pct=None, currency="INR", status=Status.PUBLISHED, title="Backend internship"):
        internship = Internship(
            title=title,
            price=Decimal(price),
            flat_discount=Decimal(flat) if flat is not None else None,
            percentage_discount=Decimal(pct) if pct is not None else None,
            currency=currency,
            status=status,
        )
        db.add(internship)
        db.commit()
        return internship
    return _make


@pytest.fixture()
def make_batch(db):
    def _make(internship, name="Batch 1", status=Status.PUBLISHED):
        batch = InternshipBatch(internship_id=internship.id, name=name, status=status)
        db.add(batch)
        db.commit()
        return batch
    return _make


@pytest.fixture()
def make_discount(db):
    def _make(code, discount_type=DiscountType.PERCENTAGE, value="10", **kwargs):
        fields: Dict[str, Any] = {
            "is_active": True,
            "is_combinable": False,
            "valid_from": utcnow() - timedelta(days=1),
            "used_count": 0,
        }
        fields.update(kwargs)
        discount = Discount(code=code, discount_type=discount_type, discount_value=Decimal(value), **fields)
        db.add(discount)
        db.commit()
        return discount
    return _make


# --- API ---

FAKE_USER: Dict[str, Any] = {
    "id": "test-user",
    "email": "test@example.com",
    "role": "user",
    "token": "fake-token",
}

FAKE_ADMIN: Dict[str, Any] = {
    "id": "admin-user-id",
    "email": "admin@example.com",
    "role": "admin",
    "token": "fake-admin-token",
}


@pytest.fixture()
def app(session_factory, gateway, monkeypatch):
    fastapi_app = create_app()

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[require_user] = lambda: FAKE_USER
    fastapi_app.dependency_overrides[require_admin] = lambda: FAKE_ADMIN

    # Les vues résolvent la passerelle via le registre global
    registry_mod.registry.register(gateway)
    monkeypatch.setattr(registry_mod, "DEFAULT_PAYMENT_GATEWAY", gateway.provider_name())
    yield fastapi_app
    registry_mod.registry.unregister(gateway.provider_name())
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    # pas de "with": le lifespan (create_all sur la base réelle) n'est pas déclenché
    yield TestClient(app)
