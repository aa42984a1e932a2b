from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from tap_payments.api.dependencies import get_db_session
from tap_payments.domain.models import Base
from tap_payments.infrastructure.database.session import build_session_factory
from tap_payments.main import app

PIN = "4821"


@pytest.fixture
def client(tmp_path):
    db_path = tmp_path / "api.db"

    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    # NullPool: TestClient usa un event loop distinto por request
    engine  = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    factory = build_session_factory(engine)

    async def override_get_db_session():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def enroll(client, email="ana@tapwallet.mx", pin=PIN) -> dict:
    response = client.post("/v1/users", json={"email": email, "pin": pin})
    assert response.status_code == 201
    body = response.json()
    return {"Authorization": f"Bearer {body['access_token']}"}


def tap(client, headers, **overrides):
    payload = {
        "device_identifier": "NFC-04A1B2C3",
        "amount":            "10.00",
        "merchant_id":       "M1",
        "merchant_name":     "Café Central",
        "pin":               PIN,
    }
    payload.update(overrides)
    return client.post("/v1/transactions/authorize", json=payload, headers=headers)


class TestUsersRouter:

    def test_enroll_returns_token(self, client):
        response = client.post("/v1/users", json={"email": "ana@tapwallet.mx", "pin": PIN})

        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "ana@tapwallet.mx"
        assert body["token_type"] == "bearer"
        assert body["access_token"]

    def test_duplicate_email(self, client):
        enroll(client)
        response = client.post("/v1/users", json={"email": "ana@tapwallet.mx", "pin": "9137"})

        assert response.status_code == 409
        assert "error" in response.json()

    def test_trivial_pin_rejected(self, client):
        response = client.post("/v1/users", json={"email": "ana@tapwallet.mx", "pin": "1111"})

        assert response.status_code == 422


class TestTransactionsRouter:

    def test_authorize_and_verify(self, client):
        headers = enroll(client)

        response = tap(client, headers)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "approved"
        assert body["risk_score"] == 0
        assert Decimal(body["amount"]) == Decimal("10.00")

        listed = client.get("/v1/transactions", headers=headers)
        assert listed.status_code == 200
        assert [t["id"] for t in listed.json()] == [body["id"]]

        verified = client.get(f"/v1/transactions/{body['id']}/verify", headers=headers)
        assert verified.status_code == 200
        assert verified.json() == {"transaction_id": body["id"], "valid": True}

    def test_wrong_pin_returns_reason_code(self, client):
        headers = enroll(client)

        response = tap(client, headers, pin="0000")

        assert response.status_code == 401
        assert response.json()["code"] == "invalid_pin"

    def test_daily_limit_returns_reason_code(self, client):
        headers = enroll(client)
        assert tap(client, headers, amount="600.00").status_code == 201

        response = tap(client, headers, amount="500.00", merchant_id="M2")

        assert response.status_code == 422
        assert response.json()["code"] == "daily_limit_exceeded"

    def test_user_id_cannot_be_sent_in_body(self, client):
        headers = enroll(client)

        response = tap(client, headers, user_id="6f1c2a4e-8d3b-4f7a-9c21-0b5e7d9a1f33")

        assert response.status_code == 422

    def test_missing_token(self, client):
        response = tap(client, {})

        assert response.status_code in (401, 403)

    def test_invalid_token(self, client):
        response = tap(client, {"Authorization": "Bearer no-es-un-jwt"})

        assert response.status_code == 401


class TestDevicesRouter:

    def test_register_list_and_deactivate(self, client):
        headers = enroll(client)

        created = client.post(
            "/v1/devices",
            json={"device_identifier": "NFC-04A1B2C3", "device_name": "Pulsera"},
            headers=headers,
        )
        assert created.status_code == 201
        device_id = created.json()["id"]

        listed = client.get("/v1/devices", headers=headers)
        assert [d["id"] for d in listed.json()] == [device_id]

        deactivated = client.delete(f"/v1/devices/{device_id}", headers=headers)
        assert deactivated.status_code == 200
        assert deactivated.json()["is_active"] is False

        response = tap(client, headers)
        assert response.status_code == 403
        assert response.json()["code"] == "device_inactive"

    def test_device_of_other_user(self, client):
        owner = enroll(client, email="bruno@tapwallet.mx", pin="7306")
        client.post(
            "/v1/devices",
            json={"device_identifier": "NFC-04A1B2C3", "device_name": "Llavero"},
            headers=owner,
        )
        headers = enroll(client)

        response = tap(client, headers)

        assert response.status_code == 403
        assert response.json()["code"] == "device_not_owned"


class TestSecurityRouter:

    def test_status_logs_and_refresh(self, client):
        headers = enroll(client)
        assert tap(client, headers).status_code == 201

        status = client.get("/v1/security/status", headers=headers)
        assert status.status_code == 200
        assert status.json()["security_score"] == 100

        logs = client.get("/v1/security/logs", headers=headers)
        assert logs.status_code == 200
        event_types = {e["event_type"] for e in logs.json()}
        assert {"user_signup", "nfc_device_registered", "transaction_processed"} <= event_types

        snapshot = client.get("/v1/account/refresh", headers=headers)
        assert snapshot.status_code == 200
        assert len(snapshot.json()["transactions"]) == 1
        assert len(snapshot.json()["devices"]) == 1


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["redis"] == "disabled"


def test_request_id_and_payment_headers(client):
    response = client.get("/health", headers={"X-Request-ID": "rid-123"})

    assert response.headers["X-Request-ID"] == "rid-123"
    assert response.headers["Cache-Control"] == "no-store, private"
    assert response.headers["X-Frame-Options"] == "DENY"
