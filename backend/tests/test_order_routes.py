"""API tests: cart to checkout to payment over HTTP."""

from datetime import timedelta

from restocore.core.security import create_access_token

API = "/api/v1"


def open_cart_with(client, headers, session_id, *lines):
    resp = client.post(f"{API}/carts/sessions/{session_id}", headers=headers)
    assert resp.status_code == 200
    for menu_item_id, quantity in lines:
        resp = client.post(
            f"{API}/carts/sessions/{session_id}/items",
            json={"menu_item_id": menu_item_id, "quantity": quantity},
            headers=headers,
        )
        assert resp.status_code == 201
    return resp.json()


def create_order(client, headers, steak):
    cart = open_cart_with(client, headers, "table-3", (steak.id, 2))
    resp = client.post(f"{API}/orders/checkout", json={"cart_id": cart["id"]}, headers=headers)
    assert resp.status_code == 201
    return resp.json()


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"] == "healthy"

    def test_security_headers(self, client):
        resp = client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"


class TestAuthentication:
    def test_missing_token(self, client, store):
        resp = client.get(f"{API}/orders")
        assert resp.status_code == 401

    def test_expired_token(self, client, store):
        token = create_access_token(
            {"sub": "x", "role": "owner", "store_id": store.id},
            expires_delta=timedelta(minutes=-1),
        )
        resp = client.get(f"{API}/orders", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_token_without_store(self, client):
        token = create_access_token({"sub": "x", "role": "owner"})
        resp = client.get(f"{API}/orders", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestCartRoutes:
    def test_add_update_and_remove(self, client, server_headers, burger, soda):
        cheese, _ = burger.options
        client.post(f"{API}/carts/sessions/bar-1", headers=server_headers)
        resp = client.post(
            f"{API}/carts/sessions/bar-1/items",
            json={"menu_item_id": burger.id, "quantity": 1, "option_ids": [cheese.id]},
            headers=server_headers,
        )
        cart = resp.json()
        assert cart["subtotal"] == "14.00"
        assert cart["items"][0]["options"][0]["name"] == "Extra cheese"

        item_id = cart["items"][0]["id"]
        resp = client.patch(
            f"{API}/carts/sessions/bar-1/items/{item_id}",
            json={"quantity": 3},
            headers=server_headers,
        )
        assert resp.json()["subtotal"] == "42.00"

        resp = client.delete(f"{API}/carts/sessions/bar-1/items/{item_id}", headers=server_headers)
        assert resp.json()["items"] == []

    def test_zero_quantity_rejected_by_schema(self, client, server_headers, soda):
        client.post(f"{API}/carts/sessions/bar-2", headers=server_headers)
        resp = client.post(
            f"{API}/carts/sessions/bar-2/items",
            json={"menu_item_id": soda.id, "quantity": 0},
            headers=server_headers,
        )
        assert resp.status_code == 422

    def test_unknown_cart(self, client, server_headers):
        resp = client.get(f"{API}/carts/sessions/nope", headers=server_headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"


class TestCheckoutAndPayment:
    """End-to-end order flow."""

    def test_cart_to_completed_order(self, client, server_headers, cashier_headers, steak):
        order = create_order(client, server_headers, steak)
        assert order["status"] == "pending"
        assert order["subtotal"] == "100.00"
        assert order["vat_amount"] == "7.00"
        assert order["service_charge_amount"] == "10.00"
        assert order["grand_total"] == "117.00"
        assert order["remaining_balance"] == "117.00"

        for status in ("preparing", "ready"):
            resp = client.patch(
                f"{API}/orders/{order['id']}/status", json={"status": status}, headers=server_headers
            )
            assert resp.status_code == 200

        resp = client.post(
            f"{API}/orders/{order['id']}/payments",
            json={"amount": "117.00", "method": "cash", "amount_tendered": "120.00"},
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["change"] == "3.00"
        assert data["order_status"] == "completed"
        assert data["is_fully_paid"] is True
        assert data["payment"]["recorded_by"] == "cashier-1"

        resp = client.get(f"{API}/orders/{order['id']}/payment-summary", headers=cashier_headers)
        assert resp.json()["net_paid"] == "117.00"

    def test_second_checkout_error_shape(self, client, server_headers, steak):
        order = create_order(client, server_headers, steak)

        resp = client.post(
            f"{API}/orders/checkout", json={"cart_id": order["cart_id"]}, headers=server_headers
        )
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "cart_already_checked_out"
        assert "already been checked out" in body["detail"]
        assert body["context"] == {"cart_id": order["cart_id"], "order_id": order["id"]}

    def test_overpayment(self, client, server_headers, cashier_headers, steak):
        order = create_order(client, server_headers, steak)
        resp = client.post(
            f"{API}/orders/{order['id']}/payments",
            json={"amount": "150.00", "method": "credit_card"},
            headers=cashier_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "overpayment"
        assert resp.json()["context"]["remaining"] == "117.00"

    def test_server_cannot_take_payment(self, client, server_headers, steak):
        order = create_order(client, server_headers, steak)
        resp = client.post(
            f"{API}/orders/{order['id']}/payments",
            json={"amount": "10.00", "method": "cash"},
            headers=server_headers,
        )
        assert resp.status_code == 403

    def test_refund_by_admin(self, client, server_headers, cashier_headers, admin_headers, steak):
        order = create_order(client, server_headers, steak)
        payment = client.post(
            f"{API}/orders/{order['id']}/payments",
            json={"amount": "117.00", "method": "credit_card"},
            headers=cashier_headers,
        ).json()["payment"]

        refund = {"payment_id": payment["id"], "amount": "17.00", "reason": "Late"}
        resp = client.post(f"{API}/orders/{order['id']}/refunds", json=refund, headers=cashier_headers)
        assert resp.status_code == 403

        resp = client.post(f"{API}/orders/{order['id']}/refunds", json=refund, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json()["total_paid"] == "100.00"
        assert resp.json()["paid_at"] is None

    def test_quick_checkout_requires_cashier(self, client, server_headers, cashier_headers, soda):
        body = {"items": [{"menu_item_id": soda.id, "quantity": 2}], "customer_name": "Sam"}
        assert client.post(f"{API}/orders/quick-checkout", json=body, headers=server_headers).status_code == 403

        resp = client.post(f"{API}/orders/quick-checkout", json=body, headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.json()["order_type"] == "takeaway"
        assert resp.json()["grand_total"] == "7.02"

    def test_other_store_cannot_see_order(self, client, server_headers, outsider_headers, steak):
        order = create_order(client, server_headers, steak)

        resp = client.get(f"{API}/orders/{order['id']}", headers=outsider_headers)
        assert resp.status_code == 404

    def test_cancel_and_list(self, client, server_headers, cashier_headers, steak):
        order = create_order(client, server_headers, steak)
        resp = client.post(
            f"{API}/orders/{order['id']}/cancel", json={"reason": "Changed mind"}, headers=cashier_headers
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        resp = client.get(f"{API}/orders", params={"status": "cancelled"}, headers=server_headers)
        assert [o["id"] for o in resp.json()] == [order["id"]]

    def test_kitchen_board_and_session_orders(self, client, server_headers, chef_headers, steak):
        order = create_order(client, server_headers, steak)
        client.patch(f"{API}/orders/{order['id']}/status", json={"status": "preparing"}, headers=chef_headers)

        resp = client.get(f"{API}/orders/kitchen", headers=chef_headers)
        assert resp.status_code == 200
        page = resp.json()
        assert page["total"] == 1
        assert page["has_more"] is False
        assert page["items"][0]["status"] == "preparing"
        assert page["items"][0]["remaining_balance"] == "117.00"

        resp = client.get(f"{API}/orders/kitchen", params={"status": "pending"}, headers=chef_headers)
        assert resp.json()["items"] == []

        resp = client.get(f"{API}/orders/sessions/table-3", headers=server_headers)
        assert [o["id"] for o in resp.json()] == [order["id"]]

    def test_invalid_transition(self, client, server_headers, steak):
        order = create_order(client, server_headers, steak)
        resp = client.patch(
            f"{API}/orders/{order['id']}/status", json={"status": "completed"}, headers=server_headers
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_status_transition"


class TestDiscountRoutes:
    def test_cashier_refused_owner_allowed(self, client, server_headers, cashier_headers, owner_headers, steak):
        order = create_order(client, server_headers, steak)
        discount = {"discount_type": "percentage", "value": "60", "reason": "Staff meal"}

        resp = client.post(f"{API}/orders/{order['id']}/discount", json=discount, headers=cashier_headers)
        assert resp.status_code == 403
        body = resp.json()
        assert body["error"] == "insufficient_role"
        assert body["context"]["required_role"] == "owner"

        resp = client.post(f"{API}/orders/{order['id']}/discount", json=discount, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json()["discount_amount"] == "60.00"
        assert resp.json()["grand_total"] == "46.80"

        resp = client.delete(f"{API}/orders/{order['id']}/discount", headers=cashier_headers)
        assert resp.status_code == 403
        resp = client.delete(f"{API}/orders/{order['id']}/discount", headers=owner_headers)
        assert resp.json()["grand_total"] == "117.00"

    def test_fixed_above_subtotal(self, client, server_headers, owner_headers, steak):
        order = create_order(client, server_headers, steak)
        resp = client.post(
            f"{API}/orders/{order['id']}/discount",
            json={"discount_type": "fixed_amount", "value": "150.00"},
            headers=owner_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "invalid_discount"


class TestSplitRoutes:
    def test_equal_split_and_pay(self, client, server_headers, cashier_headers, steak):
        order = create_order(client, server_headers, steak)
        url = f"{API}/orders/{order['id']}/split"

        resp = client.post(f"{url}/equal", json={"diner_count": 3}, headers=cashier_headers)
        assert resp.status_code == 200
        assert [s["amount"] for s in resp.json()["shares"]] == ["39.00", "39.00", "39.00"]
        assert resp.json()["balance"]["is_balanced"] is True

        pay = {"method": "equal", "diner_count": 3, "share_id": "share-1", "payment_method": "cash"}
        resp = client.post(f"{url}/pay", json=pay, headers=cashier_headers)
        assert resp.status_code == 201
        assert resp.json()["remaining_balance"] == "78.00"

        resp = client.post(f"{url}/pay", json=pay, headers=cashier_headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "share_already_paid"

        resp = client.post(f"{url}/equal", json={"diner_count": 3}, headers=cashier_headers)
        assert [s["paid"] for s in resp.json()["shares"]] == [True, False, False]

    def test_unbalanced_custom_split(self, client, server_headers, cashier_headers, steak):
        order = create_order(client, server_headers, steak)
        url = f"{API}/orders/{order['id']}/split"

        resp = client.post(f"{url}/custom", json={"amounts": ["40.00", "40.00"]}, headers=cashier_headers)
        balance = resp.json()["balance"]
        assert balance["is_underpaid"] is True
        assert balance["remaining"] == "37.00"

        pay = {
            "method": "custom",
            "amounts": ["40.00", "40.00"],
            "share_id": "share-1",
            "payment_method": "cash",
        }
        resp = client.post(f"{url}/pay", json=pay, headers=cashier_headers)
        assert resp.status_code == 422
        assert resp.json()["error"] == "unbalanced_split"

    def test_redefined_split_conflicts_with_paid_share(self, client, server_headers, cashier_headers, steak):
        order = create_order(client, server_headers, steak)
        url = f"{API}/orders/{order['id']}/split"

        pay = {
            "method": "custom",
            "amounts": ["40.00", "77.00"],
            "share_id": "share-1",
            "payment_method": "cash",
        }
        assert client.post(f"{url}/pay", json=pay, headers=cashier_headers).status_code == 201

        changed = {**pay, "amounts": ["60.00", "57.00"], "share_id": "share-2"}
        resp = client.post(f"{url}/pay", json=changed, headers=cashier_headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "split_mismatch"
        assert resp.json()["context"]["paid_amount"] == "40.00"

        resp = client.post(f"{url}/custom", json={"amounts": ["60.00", "57.00"]}, headers=cashier_headers)
        assert resp.status_code == 409

        summary = client.get(f"{API}/orders/{order['id']}/payment-summary", headers=cashier_headers)
        assert summary.json()["total_paid"] == "40.00"

    def test_by_item_unsupported(self, client, server_headers, cashier_headers, steak):
        order = create_order(client, server_headers, steak)
        pay = {"method": "by_item", "share_id": "share-1", "payment_method": "cash"}
        resp = client.post(f"{API}/orders/{order['id']}/split/pay", json=pay, headers=cashier_headers)
        assert resp.status_code == 422
        assert resp.json()["error"] == "unsupported_split_method"

    def test_diner_count_out_of_range(self, client, server_headers, cashier_headers, steak):
        order = create_order(client, server_headers, steak)
        resp = client.post(
            f"{API}/orders/{order['id']}/split/equal", json={"diner_count": 21}, headers=cashier_headers
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "invalid_diner_count"
