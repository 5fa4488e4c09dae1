import io

from conftest import bearer, register


class TestRoleGating:
    def test_buyer_cannot_create_store(self, client, buyer):
        response = client.post("/api/store/create", json={"name": "Nope"}, headers=buyer["headers"])
        assert response.status_code == 403
        body = response.get_json()
        assert body["message"] == "Seller access required"
        assert body["userRole"] == "user"

    def test_admin_is_not_a_seller(self, client, admin):
        response = client.post("/api/store/create", json={"name": "Admin shop"}, headers=admin["headers"])
        assert response.status_code == 403
        assert response.get_json()["userRole"] == "admin"

    def test_anonymous_gets_401(self, client):
        assert client.post("/api/store/create", json={"name": "x"}).status_code == 401

    def test_admin_listing_requires_admin(self, client, seller):
        response = client.get("/api/admin/stores", headers=seller["headers"])
        assert response.status_code == 403
        assert response.get_json()["userRole"] == "seller"


class TestStoreLifecycle:
    def test_public_ids_are_sequential(self, make_seller):
        first = make_seller("first")
        second = make_seller("second")
        assert first["store"]["storeId"] == "1001"
        assert second["store"]["storeId"] == "1002"

    def test_one_store_per_seller(self, client, seller):
        response = client.post("/api/store/create", json={"name": "Again"}, headers=seller["headers"])
        assert response.status_code == 409
        assert response.get_json()["message"] == "User already has a store"

    def test_seller_store_missing(self, client):
        data = register(client, "lonely", role="seller")
        response = client.get("/api/store/seller", headers=bearer(data["token"]))
        assert response.status_code == 404
        assert response.get_json()["code"] == "NO_STORE"

    def test_update_store(self, client, seller):
        response = client.put("/api/store", json={"description": "Fresh stock"}, headers=seller["headers"])
        assert response.status_code == 200
        assert response.get_json()["description"] == "Fresh stock"
        assert response.get_json()["name"] == seller["store"]["name"]

    def test_create_with_logo(self, app, client):
        data = register(client, "artist", role="seller")
        response = client.post(
            "/api/store/create",
            data={"name": "Gallery", "logo": (io.BytesIO(b"\x89PNG fake"), "logo.png", "image/png")},
            headers=bearer(data["token"]),
            content_type="multipart/form-data",
        )
        assert response.status_code == 201
        logo = response.get_json()["store"]["logo"]
        assert logo.startswith("/uploads/") and logo.endswith("logo.png")

    def test_logo_must_be_an_image(self, client):
        data = register(client, "artist", role="seller")
        response = client.post(
            "/api/store/create",
            data={"name": "Gallery", "logo": (io.BytesIO(b"text"), "notes.txt", "text/plain")},
            headers=bearer(data["token"]),
            content_type="multipart/form-data",
        )
        assert response.status_code == 400
        follow_up = client.get("/api/store/seller", headers=bearer(data["token"]))
        assert follow_up.status_code == 404


class TestPublicListing:
    def test_list_and_detail(self, client, seller, make_product):
        for index in range(5):
            make_product(seller, name=f"Item {index}")

        stores = client.get("/api/stores").get_json()
        assert len(stores) == 1
        assert stores[0]["productCount"] == 5
        assert len(stores[0]["products"]) == 4

        by_public_id = client.get(f"/api/stores/{seller['store']['storeId']}")
        by_internal_id = client.get(f"/api/stores/{seller['store']['id']}")
        assert by_public_id.status_code == by_internal_id.status_code == 200
        assert by_public_id.get_json()["id"] == by_internal_id.get_json()["id"]

    def test_unknown_store(self, client):
        assert client.get("/api/stores/9999").status_code == 404


class TestDeleteStore:
    def test_owner_delete_cascades_products(self, client, seller, make_product):
        product = make_product(seller)
        response = client.delete(f"/api/stores/{seller['store']['storeId']}", headers=seller["headers"])
        assert response.status_code == 200
        assert response.get_json()["productsRemoved"] == 1
        assert client.get(f"/api/products/{product['id']}").status_code == 404
        assert client.get("/api/stores").get_json() == []

    def test_other_seller_cannot_delete(self, client, make_seller):
        owner = make_seller("owner")
        rival = make_seller("rival")
        response = client.delete(f"/api/stores/{owner['store']['id']}", headers=rival["headers"])
        assert response.status_code == 403

    def test_admin_can_delete_any_store(self, client, seller, admin):
        response = client.delete(f"/api/stores/{seller['store']['id']}", headers=admin["headers"])
        assert response.status_code == 200

    def test_buyer_cannot_delete(self, client, seller, buyer):
        response = client.delete(f"/api/stores/{seller['store']['id']}", headers=buyer["headers"])
        assert response.status_code == 403
        assert response.get_json()["userRole"] == "user"


class TestAdminStores:
    def test_admin_listing_includes_counts(self, client, seller, buyer, admin, make_product):
        product = make_product(seller, stock=3)
        client.post(
            "/api/orders",
            json={"items": [{"productId": product["id"], "quantity": 1}]},
            headers=buyer["headers"],
        )
        stores = client.get("/api/admin/stores", headers=admin["headers"]).get_json()
        assert len(stores) == 1
        assert stores[0]["owner"]["username"] == "seller"
        assert stores[0]["productCount"] == 1
        assert stores[0]["orderCount"] == 1


class TestStoreInfo:
    def test_map_of_stores_by_id(self, client, make_seller):
        first = make_seller("first")
        second = make_seller("second")
        info = client.get("/api/store/info").get_json()
        assert set(info) == {first["store"]["id"], second["store"]["id"]}
        assert info[second["store"]["id"]]["storeId"] == "1002"

    def test_empty_marketplace(self, client):
        assert client.get("/api/store/info").get_json() == {}
