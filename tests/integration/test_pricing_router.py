from datetime import timedelta
from decimal import Decimal

from internhub.models import DiscountType, utcnow


def test_calculate_pricing_with_coupons(client, make_internship, make_discount):
    internship = make_internship(price="1000", flat="100")
    make_discount("A", DiscountType.PERCENTAGE, "10", is_combinable=True)
    make_discount("B", DiscountType.FLAT, "50", is_combinable=True)

    r = client.post("/api/v1/pricing/calculate", json={"internship_id": internship.id, "discount_codes": ["b", "a"]})
    assert r.status_code == 200
    data = r.json()
    assert Decimal(data["final_price"]) == Decimal("760")
    assert Decimal(data["total_discount"]) == Decimal("240")
    assert Decimal(data["savings_percent"]) == Decimal("24")
    assert data["payment_required"] is True
    assert [c["code"] for c in data["applied_coupons"]] == ["A", "B"]
    assert data["pricing_message"] == "Final price: INR 760.00 (You're saving INR 240.00)"


def test_expired_coupon_is_a_400_with_reason(client, make_internship, make_discount):
    internship = make_internship()
    make_discount("OLD", valid_from=utcnow() - timedelta(days=10), valid_until=utcnow() - timedelta(days=1))

    r = client.post("/api/v1/pricing/calculate", json={"internship_id": internship.id, "discount_codes": ["OLD"]})
    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "validation_error"
    assert error["details"]["reason"] == "expired"


def test_non_combinable_coupons_are_rejected(client, make_internship, make_discount):
    internship = make_internship()
    make_discount("SOLO", is_combinable=False)
    make_discount("TEAM", is_combinable=True)
    r = client.post("/api/v1/pricing/calculate", json={"internship_id": internship.id, "discount_codes": ["SOLO", "TEAM"]})
    assert r.status_code == 400
    assert r.json()["error"]["details"]["reason"] == "not_combinable"


def test_unknown_internship_is_404(client):
    r = client.post("/api/v1/pricing/calculate", json={"internship_id": "missing"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"


def test_validate_coupon_preview(client, make_internship, make_discount):
    internship = make_internship(price="1000", flat="100")
    make_discount("WELCOME10", value="10", description="Welcome offer")

    r = client.post("/api/v1/pricing/coupons/validate", json={"internship_id": internship.id, "code": "welcome10"})
    assert r.status_code == 200
    data = r.json()
    assert data["is_valid"] is True
    assert data["code"] == "WELCOME10"
    assert Decimal(data["amount"]) == Decimal("90")


def test_validate_unknown_coupon_is_not_an_error(client, make_internship):
    internship = make_internship()
    r = client.post("/api/v1/pricing/coupons/validate", json={"internship_id": internship.id, "code": "NOPE"})
    assert r.status_code == 200
    assert r.json()["is_valid"] is False
