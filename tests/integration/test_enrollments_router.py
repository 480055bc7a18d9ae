import asyncio
import json
from decimal import Decimal

from internhub.errors import IntegrationError


def _initialize(client, internship_id, **extra):
    return client.post("/api/v1/enrollments/initialize", json={"internship_id": internship_id, **extra})


def test_initialize_paid_enrollment(client, make_internship):
    internship = make_internship(price="1000", flat="100")
    r = _initialize(client, internship.id)
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "pending"
    assert data["payment_status"] == "processing"
    assert data["payment_required"] is True
    assert data["created"] is True
    assert Decimal(data["pricing"]["final_amount"]) == Decimal("900")
    assert Decimal(data["pricing"]["net_payable"]) == Decimal("900")
    session = data["payment_session"]
    assert session["provider"] == "fake"
    assert session["payment_url"].endswith(data["payment_id"])


def test_initialize_twice_returns_same_enrollment(client, gateway, make_internship):
    internship = make_internship()
    first = _initialize(client, internship.id).json()
    second = _initialize(client, internship.id).json()
    assert second["enrollment_id"] == first["enrollment_id"]
    assert second["payment_id"] == first["payment_id"]
    assert second["created"] is False
    assert len(gateway.calls) == 1


def test_free_enrollment_then_duplicate_is_409(client, make_internship):
    internship = make_internship(price="0")
    r = _initialize(client, internship.id)
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert r.json()["payment_session"] is None

    r = _initialize(client, internship.id)
    assert r.status_code == 409


def test_gateway_failure_is_502_and_enrollment_stays_readable(client, gateway, make_internship):
    gateway.fail_with = IntegrationError("gateway down", hint="Payment provider error, please retry later")
    r = _initialize(client, make_internship().id)
    assert r.status_code == 502
    details = r.json()["error"]["details"]

    r = client.get(f"/api/v1/enrollments/{details['enrollment_id']}")
    assert r.status_code == 200
    assert r.json()["status"] == "pending"
    assert r.json()["payment_status"] == "failed"


def test_webhook_completes_enrollment(client, make_internship):
    data = _initialize(client, make_internship().id).json()
    body = json.dumps({"type": "payment.succeeded", "id": "evt_9", "status": "success", "payment_id": data["payment_id"]})

    r = client.post("/api/v1/payments/webhook/fake", content=body)
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["enrollment_id"] == data["enrollment_id"]

    r = client.get(f"/api/v1/enrollments/{data['enrollment_id']}")
    assert r.json()["status"] == "completed"

    payment = client.get(f"/api/v1/payments/{data['payment_id']}").json()
    assert payment["payment_status"] == "success"
    assert [a["attempt_number"] for a in payment["attempts"]] == [1]


def test_webhook_is_handled_off_the_event_loop(client, gateway, make_internship, monkeypatch):
    data = _initialize(client, make_internship().id).json()
    seen = {}
    original = gateway.process_webhook

    def process_webhook(payload, headers):
        try:
            asyncio.get_running_loop()
            seen["in_loop"] = True
        except RuntimeError:
            seen["in_loop"] = False
        return original(payload, headers)

    monkeypatch.setattr(gateway, "process_webhook", process_webhook)
    body = json.dumps({"type": "payment.succeeded", "id": "evt_10", "status": "success", "payment_id": data["payment_id"]})
    r = client.post("/api/v1/payments/webhook/fake", content=body)

    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert seen == {"in_loop": False}


def test_sync_and_finalize(client, gateway, make_internship):
    data = _initialize(client, make_internship().id).json()
    r = client.post(f"/api/v1/payments/{data['payment_id']}/sync")
    assert r.status_code == 200
    assert r.json()["status"] == "completed"

    r = client.post(f"/api/v1/enrollments/{data['enrollment_id']}/finalize")
    assert r.json()["status"] == "completed"


def test_cancel_then_list(client, make_internship):
    data = _initialize(client, make_internship().id).json()
    r = client.post(f"/api/v1/enrollments/{data['enrollment_id']}/cancel")
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    assert r.json()["payment_status"] == "cancelled"

    listed = client.get("/api/v1/enrollments").json()
    assert [e["enrollment_id"] for e in listed] == [data["enrollment_id"]]


def test_refund_pending_enrollment_is_400(client, make_internship):
    data = _initialize(client, make_internship().id).json()
    r = client.post(f"/api/v1/enrollments/{data['enrollment_id']}/refund")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_operation"


def test_unknown_enrollment_is_404(client):
    assert client.get("/api/v1/enrollments/missing").status_code == 404
