"""HTTP surface: auth, visibility rules, admin guards and cart status codes."""

import structlog
from conftest import auth_headers, make_product, make_user, reserved_of, stock_of

from models.cartModels import Cart
from models.userModel import Users


def _signup(client, email="shopper@example.com", password="secret123", **extra):
    return client.post("/api/auth/signup", json={"email": email, "password": password, **extra})


class TestAuth:
    def test_signup_then_login_returns_token(self, client):
        created = _signup(client)
        assert created.status_code == 201
        assert created.get_json()["user"]["role"] == "USER"

        response = client.post("/api/auth/login", json={"email": "shopper@example.com", "password": "secret123"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["access_token"]
        assert body["user"]["email"] == "shopper@example.com"

    def test_duplicate_email_is_conflict(self, client):
        _signup(client)
        assert _signup(client).status_code == 409

    def test_signup_rejects_short_password(self, client):
        response = _signup(client, password="abc")
        assert response.status_code == 400

    def test_signup_rejects_unknown_role(self, client):
        assert _signup(client, role="SUPERUSER").status_code == 400

    def test_wrong_password_is_unauthorized(self, client):
        _signup(client)
        response = client.post("/api/auth/login", json={"email": "shopper@example.com", "password": "wrong-one"})
        assert response.status_code == 401

    def test_login_requires_both_fields(self, client):
        assert client.post("/api/auth/login", json={"email": "x@example.com"}).status_code == 400

    def test_token_from_login_opens_the_cart(self, client):
        _signup(client)
        token = client.post(
            "/api/auth/login", json={"email": "shopper@example.com", "password": "secret123"}
        ).get_json()["access_token"]

        response = client.get("/api/cart", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.get_json()["items"] == []


class TestProductVisibility:
    def test_anonymous_list_hides_connected_only(self, client, session):
        make_product(session, name="Public")
        make_product(session, name="Members only", is_connected_only=True)

        body = client.get("/api/products").get_json()

        assert [p["name"] for p in body["products"]] == ["Public"]

    def test_authenticated_list_shows_everything(self, client, session):
        user_id = make_user(session)
        make_product(session, name="Public")
        make_product(session, name="Members only", is_connected_only=True)

        body = client.get("/api/products", headers=auth_headers(user_id)).get_json()

        assert body["count"] == 2

    def test_connected_only_product_is_forbidden_anonymously(self, client, session):
        product_id = make_product(session, is_connected_only=True)

        assert client.get(f"/api/products/{product_id}").status_code == 403

    def test_connected_only_product_visible_with_token(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session, is_connected_only=True)

        response = client.get(f"/api/products/{product_id}", headers=auth_headers(user_id))

        assert response.status_code == 200
        assert response.get_json()["id"] == product_id

    def test_missing_product_is_not_found(self, client):
        assert client.get("/api/products/999").status_code == 404


class TestProductAdmin:
    def test_non_admin_cannot_create(self, client, session):
        user_id = make_user(session)
        response = client.post(
            "/api/products",
            json={"name": "Lamp", "description": "Desk lamp", "price": 25.0},
            headers=auth_headers(user_id),
        )
        assert response.status_code == 403

    def test_admin_creates_product_with_stock(self, client, session):
        admin_id = make_user(session, email="admin@example.com", role="ADMIN")

        response = client.post(
            "/api/products",
            json={"name": "Lamp", "description": "Desk lamp", "price": 25.0, "stock_quantity": 8},
            headers=auth_headers(admin_id, "ADMIN"),
        )

        assert response.status_code == 201
        assert response.get_json()["stock_quantity"] == 8

    def test_create_rejects_negative_stock(self, client, session):
        admin_id = make_user(session, email="admin@example.com", role="ADMIN")
        response = client.post(
            "/api/products",
            json={"name": "Lamp", "description": "Desk lamp", "price": 25.0, "stock_quantity": -1},
            headers=auth_headers(admin_id, "ADMIN"),
        )
        assert response.status_code == 400

    def test_patch_cannot_set_stock_directly(self, client, session):
        admin_id = make_user(session, email="admin@example.com", role="ADMIN")
        product_id = make_product(session, stock=5)

        response = client.patch(
            f"/api/products/{product_id}",
            json={"stock_quantity": 50},
            headers=auth_headers(admin_id, "ADMIN"),
        )

        assert response.status_code == 400
        assert stock_of(session, product_id) == 5

    def test_stock_endpoint_applies_delta(self, client, session):
        admin_id = make_user(session, email="admin@example.com", role="ADMIN")
        product_id = make_product(session, stock=5)

        response = client.patch(
            f"/api/products/{product_id}/stock", json={"delta": 7}, headers=auth_headers(admin_id, "ADMIN")
        )

        assert response.status_code == 200
        assert response.get_json() == {"product_id": product_id, "stock_quantity": 12}

    def test_stock_endpoint_refuses_to_go_negative(self, client, session):
        admin_id = make_user(session, email="admin@example.com", role="ADMIN")
        product_id = make_product(session, stock=2)

        response = client.patch(
            f"/api/products/{product_id}/stock", json={"delta": -3}, headers=auth_headers(admin_id, "ADMIN")
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "insufficient_stock"
        assert stock_of(session, product_id) == 2

    def test_stock_endpoint_is_admin_only(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session, stock=2)

        response = client.patch(f"/api/products/{product_id}/stock", json={"delta": 1}, headers=auth_headers(user_id))

        assert response.status_code == 403

    def test_delete_refused_while_reserved(self, client, session):
        admin_id = make_user(session, email="admin@example.com", role="ADMIN")
        user_id = make_user(session)
        product_id = make_product(session, stock=5)
        client.post("/api/cart/add", json={"product_id": product_id, "quantity": 1}, headers=auth_headers(user_id))

        response = client.delete(f"/api/products/{product_id}", headers=auth_headers(admin_id, "ADMIN"))

        assert response.status_code == 409

    def test_delete_unreserved_product(self, client, session):
        admin_id = make_user(session, email="admin@example.com", role="ADMIN")
        product_id = make_product(session, stock=5)

        response = client.delete(f"/api/products/{product_id}", headers=auth_headers(admin_id, "ADMIN"))

        assert response.status_code == 200
        assert client.get(f"/api/products/{product_id}").status_code == 404


class TestCartEndpoints:
    def test_cart_requires_token(self, client):
        assert client.get("/api/cart").status_code == 401

    def test_add_returns_created_and_reserves(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session, stock=10)

        response = client.post(
            "/api/cart/add", json={"product_id": product_id, "quantity": 3}, headers=auth_headers(user_id)
        )

        assert response.status_code == 201
        assert response.get_json()["item"]["quantity"] == 3
        assert stock_of(session, product_id) == 7

    def test_add_over_stock_is_bad_request(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session, stock=2)

        response = client.post(
            "/api/cart/add", json={"product_id": product_id, "quantity": 3}, headers=auth_headers(user_id)
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "insufficient_stock"
        assert stock_of(session, product_id) == 2

    def test_add_zero_quantity_is_bad_request(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session)

        response = client.post(
            "/api/cart/add", json={"product_id": product_id, "quantity": 0}, headers=auth_headers(user_id)
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_argument"

    def test_add_unknown_product_is_not_found(self, client, session):
        user_id = make_user(session)
        response = client.post("/api/cart/add", json={"product_id": 999, "quantity": 1}, headers=auth_headers(user_id))
        assert response.status_code == 404

    def test_get_cart_reports_totals(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session, stock=10, price=20.0)
        client.post("/api/cart/add", json={"product_id": product_id, "quantity": 2}, headers=auth_headers(user_id))

        body = client.get("/api/cart", headers=auth_headers(user_id)).get_json()

        assert body["total_quantity"] == 2
        assert body["total_price"] == 40.0
        assert body["items"][0]["product"]["stock_quantity"] == 8

    def test_update_item_moves_stock(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session, stock=10)
        item_id = client.post(
            "/api/cart/add", json={"product_id": product_id, "quantity": 2}, headers=auth_headers(user_id)
        ).get_json()["item"]["id"]

        response = client.patch(f"/api/cart/item/{item_id}", json={"quantity": 5}, headers=auth_headers(user_id))

        assert response.status_code == 200
        assert stock_of(session, product_id) == 5

    def test_update_unknown_item_is_not_found(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session)
        client.post("/api/cart/add", json={"product_id": product_id, "quantity": 1}, headers=auth_headers(user_id))

        response = client.patch("/api/cart/item/999", json={"quantity": 2}, headers=auth_headers(user_id))

        assert response.status_code == 404

    def test_other_users_item_is_not_found(self, client, session):
        owner_id = make_user(session, email="owner@example.com")
        intruder_id = make_user(session, email="intruder@example.com")
        product_id = make_product(session, stock=10)
        item_id = client.post(
            "/api/cart/add", json={"product_id": product_id, "quantity": 2}, headers=auth_headers(owner_id)
        ).get_json()["item"]["id"]
        client.post("/api/cart/add", json={"product_id": product_id, "quantity": 1}, headers=auth_headers(intruder_id))

        response = client.delete(f"/api/cart/item/{item_id}", headers=auth_headers(intruder_id))

        assert response.status_code == 404
        assert reserved_of(session, product_id) == 3

    def test_delete_item_releases_stock(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session, stock=10)
        item_id = client.post(
            "/api/cart/add", json={"product_id": product_id, "quantity": 4}, headers=auth_headers(user_id)
        ).get_json()["item"]["id"]

        response = client.delete(f"/api/cart/item/{item_id}", headers=auth_headers(user_id))

        assert response.status_code == 200
        assert stock_of(session, product_id) == 10

    def test_clear_without_cart_is_not_found(self, client, session):
        user_id = make_user(session)
        assert client.delete("/api/cart/clear", headers=auth_headers(user_id)).status_code == 404

    def test_clear_releases_everything(self, client, session):
        user_id = make_user(session)
        first = make_product(session, stock=5, name="First")
        second = make_product(session, stock=5, name="Second")
        for product_id in (first, second):
            client.post("/api/cart/add", json={"product_id": product_id, "quantity": 2}, headers=auth_headers(user_id))

        response = client.delete("/api/cart/clear", headers=auth_headers(user_id))

        assert response.status_code == 200
        assert response.get_json()["released_items"] == 2
        assert stock_of(session, first) == 5
        assert stock_of(session, second) == 5

    def test_admin_can_view_any_cart(self, client, session):
        admin_id = make_user(session, email="admin@example.com", role="ADMIN")
        user_id = make_user(session)
        product_id = make_product(session, stock=5)
        client.post("/api/cart/add", json={"product_id": product_id, "quantity": 1}, headers=auth_headers(user_id))

        response = client.get(f"/api/cart/admin/{user_id}", headers=auth_headers(admin_id, "ADMIN"))

        assert response.status_code == 200
        assert response.get_json()["user_id"] == user_id

    def test_admin_cart_view_is_admin_only(self, client, session):
        user_id = make_user(session)
        assert client.get(f"/api/cart/admin/{user_id}", headers=auth_headers(user_id)).status_code == 403


class TestUsers:
    def test_list_users_is_admin_only(self, client, session):
        user_id = make_user(session)
        assert client.get("/api/users", headers=auth_headers(user_id)).status_code == 403

    def test_user_cannot_read_someone_else(self, client, session):
        user_id = make_user(session)
        other_id = make_user(session, email="other@example.com")
        assert client.get(f"/api/users/{other_id}", headers=auth_headers(user_id)).status_code == 403

    def test_user_cannot_promote_themselves(self, client, session):
        user_id = make_user(session)
        response = client.patch(f"/api/users/{user_id}", json={"role": "ADMIN"}, headers=auth_headers(user_id))
        assert response.status_code == 403

    def test_deleting_user_releases_their_cart(self, client, session):
        user_id = make_user(session)
        product_id = make_product(session, stock=6)
        client.post("/api/cart/add", json={"product_id": product_id, "quantity": 4}, headers=auth_headers(user_id))

        response = client.delete(f"/api/users/{user_id}", headers=auth_headers(user_id))

        assert response.status_code == 200
        session.rollback()
        assert stock_of(session, product_id) == 6
        assert reserved_of(session, product_id) == 0
        assert session.get(Users, user_id) is None
        assert Cart.query.filter_by(user_id=user_id).count() == 0


class TestRequestLogContext:
    def test_cart_request_binds_caller(self, client, session):
        user_id = make_user(session)

        client.get("/api/cart", headers=auth_headers(user_id))

        context = structlog.contextvars.get_contextvars()
        assert context["user_id"] == user_id
        assert context["path"] == "/api/cart"
        assert context["method"] == "GET"

    def test_each_request_starts_with_fresh_context(self, client, session):
        user_id = make_user(session)
        client.get("/api/cart", headers=auth_headers(user_id))

        client.get("/ping")

        context = structlog.contextvars.get_contextvars()
        assert "user_id" not in context
        assert context["path"] == "/ping"


def test_ping(client):
    response = client.get("/ping")
    assert response.status_code == 200
