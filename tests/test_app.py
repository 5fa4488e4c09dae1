from decimal import Decimal

from marketplace.models import to_money


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_unknown_route_is_json(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.get_json() == {"message": "Not found"}


def test_wrong_method_is_json(client):
    response = client.delete("/api/orders")
    assert response.status_code == 405
    assert response.get_json()["message"] == "Method not allowed"


def test_money_rounds_to_cents():
    assert to_money("1.005") == Decimal("1.01")
    assert to_money(3) == Decimal("3.00")
