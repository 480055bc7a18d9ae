from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from internhub.app_setup.exceptions import register_exception_handlers
from internhub.errors import (
    AlreadyExistsError,
    GatewayTimeoutError,
    IntegrationError,
    NotFoundError,
    ValidationError,
)


def _make_app(exc):
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    def boom():
        raise exc

    return app


def test_validation_error_shape():
    exc = ValidationError("discount has expired", hint="Discount has expired", details={"reason": "expired"})
    r = TestClient(_make_app(exc)).get("/boom")
    assert r.status_code == 400
    assert r.json() == {
        "error": {
            "code": "validation_error",
            "message": "discount has expired",
            "hint": "Discount has expired",
            "details": {"reason": "expired"},
        }
    }


def test_status_codes_per_error_kind():
    cases = [
        (NotFoundError("missing"), 404, "not_found"),
        (AlreadyExistsError("dup"), 409, "already_exists"),
        (IntegrationError("gateway down"), 502, "integration_error"),
        (GatewayTimeoutError("slow"), 504, "timeout"),
    ]
    for exc, status, code in cases:
        r = TestClient(_make_app(exc)).get("/boom")
        assert r.status_code == status
        assert r.json()["error"]["code"] == code


def test_hint_defaults_to_message():
    r = TestClient(_make_app(NotFoundError("cart not found"))).get("/boom")
    assert r.json()["error"]["hint"] == "cart not found"


def test_http_exception_keeps_detail():
    r = TestClient(_make_app(HTTPException(status_code=401, detail="Not authenticated"))).get("/boom")
    assert r.status_code == 401
    assert r.json() == {"detail": "Not authenticated"}


def test_timeout_is_an_integration_error():
    assert isinstance(GatewayTimeoutError("x"), IntegrationError)
