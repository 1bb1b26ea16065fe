"""HTTP tests for the /orders endpoints."""

from bson import ObjectId

from security import API_PREFIX
from tests.conftest import auth_headers, make_product

ORDERS = f"{API_PREFIX}/orders"


def _order_body(*lines):
    return {"orderItems": [{"product": str(p["_id"]), "quantity": q} for p, q in lines]}


class TestCreateOrderEndpoint:
    def test_create_order(self, client, repos, user):
        p1 = make_product(repos, price=10.0, stock=5)

        response = client.post(ORDERS, json=_order_body((p1, 2)), headers=auth_headers(user))

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["total_price"] == 20
        assert body["data"]["status"] == "pending"
        assert body["data"]["user"]["email"] == user["email"]
        assert body["data"]["order_items"][0]["product"]["id"] == str(p1["_id"])
        assert repos.products.find_by_id(p1["_id"])["count_in_stock"] == 3

    def test_admin_can_order(self, client, repos, admin):
        p1 = make_product(repos, stock=5)

        response = client.post(ORDERS, json=_order_body((p1, 1)), headers=auth_headers(admin))

        assert response.status_code == 201

    def test_insufficient_stock(self, client, repos, user):
        p1 = make_product(repos, title="Lamp", stock=5)

        response = client.post(ORDERS, json=_order_body((p1, 10)), headers=auth_headers(user))

        assert response.status_code == 400
        body = response.json()
        assert body["productName"] == "Lamp"
        assert body["availableStock"] == 5
        assert body["requestedQuantity"] == 10
        assert repos.products.find_by_id(p1["_id"])["count_in_stock"] == 5

    def test_unknown_product(self, client, user):
        response = client.post(
            ORDERS,
            json={"orderItems": [{"product": str(ObjectId()), "quantity": 1}]},
            headers=auth_headers(user),
        )

        assert response.status_code == 404

    def test_invalid_product_id(self, client, user):
        response = client.post(
            ORDERS,
            json={"orderItems": [{"product": "xyz", "quantity": 1}]},
            headers=auth_headers(user),
        )

        assert response.status_code == 400
        assert response.json()["invalidId"] == "xyz"

    def test_empty_body(self, client, user):
        response = client.post(ORDERS, json={}, headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["message"] == "Order items are required"

    def test_requires_authentication(self, client, repos):
        p1 = make_product(repos)

        response = client.post(ORDERS, json=_order_body((p1, 1)))

        assert response.status_code == 401

    def test_rejects_garbage_token(self, client, repos):
        p1 = make_product(repos)

        response = client.post(ORDERS, json=_order_body((p1, 1)), headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_localized_error(self, client, user):
        headers = {**auth_headers(user), "Accept-Language": "ar"}

        response = client.post(ORDERS, json={"orderItems": []}, headers=headers)

        assert response.status_code == 400
        assert response.json()["message"] == "عناصر الطلب مطلوبة"

    def test_localized_quantity_error(self, client, repos, user):
        p1 = make_product(repos)
        headers = {**auth_headers(user), "Accept-Language": "ar"}
        body = {"orderItems": [{"product": str(p1["_id"]), "quantity": 0}]}

        response = client.post(ORDERS, json=body, headers=headers)

        assert response.status_code == 400
        assert response.json()["message"] == "يجب أن تكون الكمية رقمًا لا يقل عن 1"


class TestListOrdersEndpoint:
    def test_user_listing_is_scoped(self, client, repos, user, other_user):
        p1 = make_product(repos, stock=10)
        client.post(ORDERS, json=_order_body((p1, 1)), headers=auth_headers(user))
        client.post(ORDERS, json=_order_body((p1, 1)), headers=auth_headers(other_user))

        response = client.get(ORDERS, headers=auth_headers(user))

        assert response.status_code == 200
        body = response.json()
        assert [o["user"] for o in body["data"]] == [str(user["_id"])]
        assert body["pagination"] == {"currentPage": 1, "totalPages": 1, "totalOrders": 1, "limit": 10}

    def test_admin_listing_with_pagination(self, client, repos, user, admin):
        p1 = make_product(repos, stock=10)
        for _ in range(3):
            client.post(ORDERS, json=_order_body((p1, 1)), headers=auth_headers(user))

        response = client.get(ORDERS, params={"page": 2, "limit": 2}, headers=auth_headers(admin))

        body = response.json()
        assert len(body["data"]) == 1
        assert body["pagination"] == {"currentPage": 2, "totalPages": 2, "totalOrders": 3, "limit": 2}

    def test_bad_paging_values_fall_back_to_defaults(self, client, admin):
        response = client.get(ORDERS, params={"page": "abc", "limit": "-5"}, headers=auth_headers(admin))

        assert response.json()["pagination"]["currentPage"] == 1
        assert response.json()["pagination"]["limit"] == 10

    def test_oversized_paging_values_are_clamped(self, client, repos, user, admin):
        p1 = make_product(repos, stock=10)
        client.post(ORDERS, json=_order_body((p1, 1)), headers=auth_headers(user))

        response = client.get(
            ORDERS, params={"page": "1000000000000000000", "limit": "5000"}, headers=auth_headers(admin)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"] == []
        assert body["pagination"] == {"currentPage": 1_000_000, "totalPages": 1, "totalOrders": 1, "limit": 100}


class TestOrderDetailEndpoints:
    def _order(self, client, repos, owner, stock=5, quantity=2):
        p1 = make_product(repos, stock=stock)
        response = client.post(ORDERS, json=_order_body((p1, quantity)), headers=auth_headers(owner))
        return p1, response.json()["data"]

    def test_owner_reads_order(self, client, repos, user):
        _, order = self._order(client, repos, user)

        response = client.get(f"{ORDERS}/{order['id']}", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["id"] == order["id"]

    def test_other_user_forbidden(self, client, repos, user, other_user):
        _, order = self._order(client, repos, user)

        response = client.get(f"{ORDERS}/{order['id']}", headers=auth_headers(other_user))

        assert response.status_code == 403

    def test_missing_order_is_404(self, client, admin):
        response = client.get(f"{ORDERS}/{ObjectId()}", headers=auth_headers(admin))

        assert response.status_code == 404

    def test_delete_requires_admin(self, client, repos, user, admin):
        _, order = self._order(client, repos, user)

        assert client.delete(f"{ORDERS}/{order['id']}", headers=auth_headers(user)).status_code == 403
        assert client.delete(f"{ORDERS}/{order['id']}", headers=auth_headers(admin)).status_code == 200
        assert client.delete(f"{ORDERS}/{order['id']}", headers=auth_headers(admin)).status_code == 404

    def test_change_status(self, client, repos, user, admin):
        _, order = self._order(client, repos, user)
        url = f"{ORDERS}/{order['id']}/change-status"

        assert client.patch(url, json={"status": "shipped"}, headers=auth_headers(user)).status_code == 403
        assert client.patch(url, json={"status": "lost"}, headers=auth_headers(admin)).status_code == 400
        assert client.patch(url, json={}, headers=auth_headers(admin)).status_code == 400

        response = client.patch(url, json={"status": "shipped"}, headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "shipped"

    def test_change_status_of_missing_order_is_404(self, client, admin):
        response = client.patch(
            f"{ORDERS}/{ObjectId()}/change-status", json={"status": "shipped"}, headers=auth_headers(admin)
        )

        assert response.status_code == 404

    def test_cancel_order(self, client, repos, user):
        p1, order = self._order(client, repos, user)

        response = client.patch(f"{ORDERS}/{order['id']}/cancel-order", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        assert repos.products.find_by_id(p1["_id"])["count_in_stock"] == 5

    def test_cancel_twice(self, client, repos, user):
        _, order = self._order(client, repos, user)
        url = f"{ORDERS}/{order['id']}/cancel-order"
        client.patch(url, headers=auth_headers(user))

        response = client.patch(url, headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["message"] == "Order is already cancelled"

    def test_cancel_shipped(self, client, repos, user, admin):
        _, order = self._order(client, repos, user)
        client.patch(f"{ORDERS}/{order['id']}/change-status", json={"status": "shipped"}, headers=auth_headers(admin))

        response = client.patch(f"{ORDERS}/{order['id']}/cancel-order", headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["message"] == "Order cannot be cancelled once it has been shipped or delivered"

    def test_cancel_is_user_only(self, client, repos, user, other_user, admin):
        _, order = self._order(client, repos, user)
        url = f"{ORDERS}/{order['id']}/cancel-order"

        assert client.patch(url, headers=auth_headers(admin)).status_code == 403
        assert client.patch(url, headers=auth_headers(other_user)).status_code == 403
