"""Pytest fixtures for marketplace tests."""

import pytest

from marketplace import create_app
from marketplace.config import TestConfig
from marketplace.extensions import db
from marketplace.models import User, UserRole

PASSWORD = "secret123"


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, username, role="user", email=None, password=PASSWORD):
    response = client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
            "role": role,
        },
    )
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def make_config(tmp_path, **overrides):
    attrs = {"UPLOAD_FOLDER": str(tmp_path / "uploads")}
    attrs.update(overrides)
    return type("LocalTestConfig", (TestConfig,), attrs)


@pytest.fixture
def app(tmp_path):
    app = create_app(make_config(tmp_path))
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def buyer(client):
    """A registered buyer: ``{"user": ..., "token": ..., "headers": ...}``."""
    data = register(client, "buyer")
    data["headers"] = bearer(data["token"])
    return data


@pytest.fixture
def make_seller(client):
    """Factory registering a seller and opening a store for them."""

    def _make(username="seller", store_name=None):
        data = register(client, username, role="seller")
        data["headers"] = bearer(data["token"])
        response = client.post(
            "/api/store/create",
            json={"name": store_name or f"{username}'s shop", "description": "Test store"},
            headers=data["headers"],
        )
        assert response.status_code == 201, response.get_json()
        data["store"] = response.get_json()["store"]
        return data

    return _make


@pytest.fixture
def seller(make_seller):
    return make_seller()


@pytest.fixture
def make_product(client):
    def _make(owner, name="Widget", price="10.00", stock=5, **extra):
        response = client.post(
            "/api/products",
            json={"name": name, "price": price, "stock": stock, **extra},
            headers=owner["headers"],
        )
        assert response.status_code == 201, response.get_json()
        return response.get_json()

    return _make


@pytest.fixture
def admin(app, client):
    with app.app_context():
        user = User(username="root", email="root@example.com", role=UserRole.admin)
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
    response = client.post("/api/auth/login", json={"email": "root@example.com", "password": PASSWORD})
    assert response.status_code == 200
    data = response.get_json()
    data["headers"] = bearer(data["token"])
    # bearer only; drop the session the login just opened
    client.post("/api/auth/logout")
    return data
