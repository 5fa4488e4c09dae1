"""Concurrent checkouts and status changes against a shared on-disk database."""

import threading

import pytest

from marketplace import create_app
from marketplace.extensions import db
from marketplace.models import User, UserRole

from conftest import PASSWORD, bearer, make_config, register


@pytest.fixture
def shared_app(tmp_path):
    config = make_config(
        tmp_path,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'shared.db'}",
        SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"timeout": 30}},
    )
    app = create_app(config)
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _seed(app, stock, buyers):
    client = app.test_client()
    owner = register(client, "seller", role="seller")
    client.post("/api/store/create", json={"name": "Busy shop"}, headers=bearer(owner["token"]))
    product = client.post(
        "/api/products",
        json={"name": "Hot item", "price": "5.00", "stock": stock},
        headers=bearer(owner["token"]),
    ).get_json()
    tokens = [register(client, f"buyer{index}")["token"] for index in range(buyers)]
    return product, tokens


def _admin_token(app):
    with app.app_context():
        user = User(username="root", email="root@example.com", role=UserRole.admin)
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
    response = app.test_client().post("/api/auth/login", json={"email": "root@example.com", "password": PASSWORD})
    return response.get_json()["token"]


def _concurrently(app, calls):
    """POST every ``(url, json, token)`` at once; returns the sorted status codes."""
    barrier = threading.Barrier(len(calls))
    statuses = []
    lock = threading.Lock()

    def post(url, body, token):
        client = app.test_client()
        barrier.wait()
        response = client.post(url, json=body, headers=bearer(token))
        with lock:
            statuses.append(response.status_code)

    threads = [threading.Thread(target=post, args=call) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return sorted(statuses)


def _checkouts(app, product, tokens, quantity):
    body = {"items": [{"productId": product["id"], "quantity": quantity}]}
    return _concurrently(app, [("/api/orders", body, token) for token in tokens])


def _stock(app, product):
    return app.test_client().get(f"/api/products/{product['id']}").get_json()["stock"]


def test_two_orders_for_scarce_stock(shared_app):
    product, tokens = _seed(shared_app, stock=3, buyers=2)
    assert _checkouts(shared_app, product, tokens, quantity=2) == [201, 409]
    assert _stock(shared_app, product) == 1


def test_never_oversells(shared_app):
    product, tokens = _seed(shared_app, stock=5, buyers=8)
    statuses = _checkouts(shared_app, product, tokens, quantity=1)
    assert statuses.count(201) == 5
    assert statuses.count(409) == 3

    client = shared_app.test_client()
    assert _stock(shared_app, product) == 0
    first_buyer_orders = client.get("/api/orders", headers=bearer(tokens[0])).get_json()
    assert len(first_buyer_orders) <= 1


def test_repeated_cancel_restocks_once(shared_app):
    product, (token,) = _seed(shared_app, stock=5, buyers=1)
    order = shared_app.test_client().post(
        "/api/orders",
        json={"items": [{"productId": product["id"], "quantity": 4}]},
        headers=bearer(token),
    ).get_json()
    assert _stock(shared_app, product) == 1

    url = f"/api/orders/{order['id']}/cancel"
    statuses = _concurrently(shared_app, [(url, None, token)] * 6)
    assert statuses == [200, 409, 409, 409, 409, 409]
    assert _stock(shared_app, product) == 5


def test_cancel_and_complete_race_has_one_winner(shared_app):
    product, (token,) = _seed(shared_app, stock=5, buyers=1)
    admin = _admin_token(shared_app)
    order = shared_app.test_client().post(
        "/api/orders",
        json={"items": [{"productId": product["id"], "quantity": 2}]},
        headers=bearer(token),
    ).get_json()

    calls = [(f"/api/orders/{order['id']}/cancel", None, token)] * 3
    calls += [(f"/api/orders/{order['id']}/complete", None, admin)] * 3
    statuses = _concurrently(shared_app, calls)
    assert statuses.count(200) == 1
    assert statuses.count(409) == 5

    status = shared_app.test_client().get(
        f"/api/orders/{order['id']}", headers=bearer(token)
    ).get_json()["status"]
    assert _stock(shared_app, product) == (5 if status == "cancelled" else 3)
