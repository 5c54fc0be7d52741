"""
HTTP API tests.

Verifies:
- Machine registration, listing and heartbeat upsert
- Payment creation, status polling and the webhook acknowledgement rules
- Catalog, inventory, users and notifications endpoints
"""

from datetime import timedelta

import pytest

from vendsys.errors import StoreUnavailableError
from vendsys.services import machine_service, payment_service
from vendsys.time_utils import utcnow

from conftest import T0, make_user


SODA = [{"product_id": "SKU-1", "name": "Soda", "quantity": 1, "price": "15.00"}]


def _create_payment(client, txn="TXN-001", items=None):
    return client.post("/api/sales/create-payment", json={
        "machine_id": "VM001",
        "vending_transaction_id": txn,
        "items": items or SODA,
    })


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["database"]["status"] == "healthy"


# =============================================================================
# MACHINES
# =============================================================================


class TestMachinesApi:

    def test_register_and_fetch(self, client, db_session):
        resp = client.post("/api/machines", json={
            "machine_id": "VM001",
            "location": "Lobby",
            "latitude": 19.43,
            "longitude": -99.13,
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["status"] == "offline"
        assert body["last_heartbeat"] is None
        assert body["coordinates"] == {"latitude": 19.43, "longitude": -99.13}

        resp = client.get("/api/machines/VM001")
        assert resp.status_code == 200
        assert resp.get_json()["location"] == "Lobby"

    def test_duplicate_machine_id(self, client, db_session):
        payload = {"machine_id": "VM001", "location": "Lobby"}
        assert client.post("/api/machines", json=payload).status_code == 201

        resp = client.post("/api/machines", json=payload)
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "payload",
        [
            {"location": "Lobby"},
            {"machine_id": "VM001", "location": "Lobby", "latitude": 10.0},
            {"machine_id": "VM001", "location": "Lobby", "latitude": 91.0, "longitude": 0.0},
            {"machine_id": "VM001", "location": "Lobby", "status": "online"},
        ],
    )
    def test_register_rejects_bad_payloads(self, client, db_session, payload):
        assert client.post("/api/machines", json=payload).status_code == 400

    def test_register_accepts_camel_case_machine_id(self, client, db_session):
        resp = client.post("/api/machines", json={"machineId": "VM050", "location": "Lobby"})
        assert resp.status_code == 201
        assert resp.get_json()["machine_id"] == "VM050"

    def test_register_rejects_both_spellings(self, client, db_session):
        resp = client.post("/api/machines", json={"machineId": "VM050", "machine_id": "VM051", "location": "Lobby"})
        assert resp.status_code == 400
        assert "machineId" in resp.get_json()["error"]

    def test_unknown_machine(self, client, db_session):
        assert client.get("/api/machines/NOPE").status_code == 404

    def test_heartbeat_upserts(self, client, db_session):
        resp = client.patch("/api/machines/VM777/status", json={"status": "online"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["machine_id"] == "VM777"
        assert body["status"] == "online"
        assert body["last_heartbeat"].endswith("Z")

    def test_heartbeat_rejects_bad_status(self, client, db_session):
        resp = client.patch("/api/machines/VM777/status", json={"status": "asleep"})
        assert resp.status_code == 400

    def test_list_filters_by_status(self, client, db_session):
        machine_service.report_heartbeat("VM001", "online", now=T0)
        machine_service.report_heartbeat("VM002", "maintenance", now=T0)

        resp = client.get("/api/machines?status=online")
        assert resp.status_code == 200
        assert [m["machine_id"] for m in resp.get_json()] == ["VM001"]

        assert client.get("/api/machines?status=bogus").status_code == 400


# =============================================================================
# SALES
# =============================================================================


class TestSalesApi:

    def test_create_payment_then_poll(self, client, gateway):
        resp = _create_payment(client)
        assert resp.status_code == 201
        assert resp.get_json()["redirect_url"] == "https://pay.example/checkout/PREF-1"
        assert gateway.preferences[0]["notification_url"] == "https://api.vending.test/api/sales/webhook"

        resp = client.get("/api/sales/status/TXN-001")
        assert resp.status_code == 200
        assert resp.get_json() == {"vending_transaction_id": "TXN-001", "status": "pending", "machine_id": "VM001"}

    def test_status_of_unknown_transaction(self, client, gateway):
        resp = client.get("/api/sales/status/NEVER")
        assert resp.status_code == 404
        assert resp.get_json()["status"] == "not_found"

    def test_gateway_outage_returns_502(self, client, gateway):
        gateway.fail_create = True

        assert _create_payment(client).status_code == 502
        assert client.get("/api/sales/status/TXN-001").status_code == 404

    def test_duplicate_and_invalid_requests(self, client, gateway):
        assert _create_payment(client).status_code == 201
        assert _create_payment(client).status_code == 400
        assert _create_payment(client, txn="TXN-002", items=[{"name": "Soda"}]).status_code == 400

    @pytest.mark.parametrize("quantity", ["²", "--5", "1_000"])
    def test_non_ascii_digit_quantity_is_rejected(self, client, gateway, quantity):
        items = [{"product_id": "SKU-1", "name": "Soda", "quantity": quantity, "price": "15.00"}]

        resp = _create_payment(client, items=items)

        assert resp.status_code == 400
        assert "quantity" in resp.get_json()["error"]
        assert gateway.preferences == []

    def test_webhook_updates_sale(self, client, gateway):
        _create_payment(client)
        gateway.set_payment("PAY-9", "approved", "TXN-001")

        resp = client.post("/api/sales/webhook", json={"type": "payment", "data": {"id": "PAY-9"}})
        assert resp.status_code == 200
        assert resp.get_json() == {"received": True, "outcome": "updated"}

        assert client.get("/api/sales/status/TXN-001").get_json()["status"] == "approved"

    def test_webhook_query_string_form(self, client, gateway):
        _create_payment(client)
        gateway.set_payment("PAY-3", "cancelled", "TXN-001")

        resp = client.post("/api/sales/webhook?type=payment&data.id=PAY-3")
        assert resp.status_code == 200
        assert client.get("/api/sales/status/TXN-001").get_json()["status"] == "cancelled"

    @pytest.mark.parametrize(
        "setup",
        ["unknown_reference", "gateway_down", "not_payment"],
    )
    def test_webhook_always_acknowledges(self, client, gateway, setup):
        _create_payment(client)
        payload = {"type": "payment", "data": {"id": "PAY-1"}}
        if setup == "unknown_reference":
            gateway.set_payment("PAY-1", "approved", "TXN-OTHER")
        elif setup == "gateway_down":
            gateway.fail_lookup = True
        else:
            payload = {"type": "merchant_order", "data": {"id": "1"}}

        resp = client.post("/api/sales/webhook", json=payload)

        assert resp.status_code == 200
        assert resp.get_json()["received"] is True
        assert client.get("/api/sales/status/TXN-001").get_json()["status"] == "pending"

    def test_webhook_refuses_during_store_outage(self, client, gateway, monkeypatch):
        def unavailable(*args, **kwargs):
            raise StoreUnavailableError("Data store unavailable")

        monkeypatch.setattr(payment_service, "reconcile", unavailable)

        resp = client.post("/api/sales/webhook", json={"type": "payment", "data": {"id": "PAY-1"}})
        assert resp.status_code == 503

    def test_list_sales_by_machine(self, client, gateway):
        _create_payment(client, txn="TXN-001")
        client.post("/api/sales/create-payment", json={
            "machine_id": "VM002",
            "vending_transaction_id": "TXN-002",
            "items": SODA,
        })

        resp = client.get("/api/sales?machineId=VM002")
        assert resp.status_code == 200
        sales = resp.get_json()
        assert [s["vending_transaction_id"] for s in sales] == ["TXN-002"]
        assert sales[0]["total_cents"] == 1500


# =============================================================================
# CATALOG AND INVENTORY
# =============================================================================


class TestInventoryApi:

    def _product(self, client, sku="SKU-1"):
        resp = client.post("/api/products", json={"sku": sku, "name": "Soda"})
        assert resp.status_code == 201
        return resp.get_json()

    def test_duplicate_sku(self, client, db_session):
        self._product(client)
        assert client.post("/api/products", json={"sku": "SKU-1", "name": "Other"}).status_code == 400

    def test_set_channel_is_an_upsert(self, client, db_session):
        product = self._product(client)
        payload = {"machine_id": "VM001", "channel_id": 1, "product_id": product["id"], "quantity": 5, "price": "15.00"}

        first = client.post("/api/inventory", json=payload)
        assert first.status_code == 201
        assert first.get_json()["price_cents"] == 1500

        payload["quantity"] = 8
        second = client.post("/api/inventory", json=payload)
        assert second.get_json()["id"] == first.get_json()["id"]

        items = client.get("/api/machines/VM001/inventory").get_json()
        assert len(items) == 1
        assert items[0]["quantity"] == 8
        assert items[0]["product"]["sku"] == "SKU-1"

    def test_set_channel_requires_existing_product(self, client, db_session):
        payload = {"machine_id": "VM001", "channel_id": 1, "product_id": 999, "quantity": 5, "price_cents": 100}
        assert client.post("/api/inventory", json=payload).status_code == 404

    def test_set_channel_accepts_camel_case_fields(self, client, db_session):
        product = self._product(client)

        resp = client.post("/api/inventory", json={
            "machineId": "VM001", "channelId": "3", "productId": product["id"], "quantity": 4, "price": "12.50",
        })

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["machine_id"] == "VM001"
        assert body["channel_id"] == 3
        assert body["price_cents"] == 1250

    def test_set_channel_rejects_both_spellings(self, client, db_session):
        product = self._product(client)
        payload = {"machine_id": "VM001", "machineId": "VM001", "channel_id": 1,
                   "product_id": product["id"], "quantity": 1, "price_cents": 100}
        assert client.post("/api/inventory", json=payload).status_code == 400

    @pytest.mark.parametrize("channel_id", ["--5", "²", "1.5"])
    def test_set_channel_rejects_malformed_channel_id(self, client, db_session, channel_id):
        product = self._product(client)
        payload = {"machine_id": "VM001", "channel_id": channel_id,
                   "product_id": product["id"], "quantity": 1, "price_cents": 100}

        resp = client.post("/api/inventory", json=payload)

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "channel_id must be an integer"

    def test_update_and_delete_item(self, client, db_session):
        product = self._product(client)
        item = client.post("/api/inventory", json={
            "machine_id": "VM001", "channel_id": 2, "product_id": product["id"], "quantity": 5, "price_cents": 900,
        }).get_json()

        resp = client.patch(f"/api/inventory/{item['id']}", json={"quantity": 0})
        assert resp.status_code == 200
        assert resp.get_json()["quantity"] == 0

        assert client.patch(f"/api/inventory/{item['id']}", json={"quantity": -1}).status_code == 400
        assert client.patch(f"/api/inventory/{item['id']}", json={"price": "1", "price_cents": 100}).status_code == 400

        assert client.delete(f"/api/inventory/{item['id']}").status_code == 200
        assert client.delete(f"/api/inventory/{item['id']}").status_code == 404


# =============================================================================
# USERS AND NOTIFICATIONS
# =============================================================================


class TestUsersApi:

    def test_create_user_and_preferences(self, client, db_session):
        resp = client.post("/api/users", json={
            "email": "Tech@Vending.Test",
            "name": "Tech",
            "password": "Password123!",
            "role": "technician",
        })
        assert resp.status_code == 201
        user = resp.get_json()
        assert user["email"] == "tech@vending.test"
        assert "password_hash" not in user
        assert user["notification_preferences"]["email"]["machine_offline"] is True

        resp = client.patch(
            f"/api/users/{user['id']}/notification-preferences",
            json={"machine_offline": False},
        )
        assert resp.status_code == 200
        assert resp.get_json()["notification_preferences"]["email"]["machine_offline"] is False

    def test_weak_password(self, client, db_session):
        resp = client.post("/api/users", json={"email": "a@b.test", "name": "A", "password": "short"})
        assert resp.status_code == 400

    def test_unknown_user_preferences(self, client, db_session):
        resp = client.patch("/api/users/999/notification-preferences", json={"low_stock": True})
        assert resp.status_code == 404

    @pytest.mark.parametrize("value", ["false", "no", 0, 1])
    def test_preferences_require_json_booleans(self, client, db_session, value):
        user = make_user(db_session, "tech@vending.test", machine_offline=True)

        resp = client.patch(f"/api/users/{user.id}/notification-preferences", json={"machine_offline": value})

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "machine_offline must be true or false"
        prefs = client.get("/api/users").get_json()[0]["notification_preferences"]["email"]
        assert prefs["machine_offline"] is True

    def test_create_user_rejects_string_preference(self, client, db_session):
        resp = client.post("/api/users", json={
            "email": "tech@vending.test",
            "name": "Tech",
            "password": "Password123!",
            "notification_preferences": {"email": {"machine_offline": "false"}},
        })
        assert resp.status_code == 400
        assert client.get("/api/users").get_json() == []

    def test_create_user_accepts_camel_case_preferences(self, client, db_session):
        resp = client.post("/api/users", json={
            "email": "tech@vending.test",
            "name": "Tech",
            "password": "Password123!",
            "notificationPreferences": {"email": {"machine_offline": False, "low_stock": True}},
        })
        assert resp.status_code == 201
        assert resp.get_json()["notification_preferences"]["email"] == {"machine_offline": False, "low_stock": True}

    def test_list_users_by_role(self, client, db_session):
        make_user(db_session, "admin@vending.test", role="admin")
        make_user(db_session, "sales@vending.test", role="sales")

        resp = client.get("/api/users?role=admin")
        assert [u["email"] for u in resp.get_json()] == ["admin@vending.test"]


class TestNotificationsApi:

    def test_sweep_endpoint_and_notifications(self, client, transport, alert_recipients):
        machine_service.report_heartbeat("VM001", "online", now=utcnow() - timedelta(hours=1))

        resp = client.post("/api/monitor/sweep")
        assert resp.status_code == 200
        assert resp.get_json()["transitioned"] == ["VM001"]
        assert len(transport.sent) == 1

        items = client.get("/api/notifications?unread=true").get_json()
        assert [n["machine_id"] for n in items] == ["VM001"]

        resp = client.patch(f"/api/notifications/{items[0]['id']}/read")
        assert resp.status_code == 200
        assert client.get("/api/notifications?unread=true").get_json() == []

    def test_mark_unknown_notification(self, client, db_session):
        assert client.patch("/api/notifications/999/read").status_code == 404
