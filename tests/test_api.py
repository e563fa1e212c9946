from datetime import timedelta

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import auth_headers
from models.order_management import Order, OrderStatus
from models.table_management import Table, TableStatus
from routes.menu_management import get_product
from services.exceptions import NotFound
from services.notifications import TOPICS
from utils.auth import create_access_token


def order_payload(seed, table=None):
    return {
        "table_id": (table or seed.table5).id,
        "items": [
            {"product_id": seed.burger.id, "quantity": 2, "unit_price": 10.0},
            {"product_id": seed.fries.id, "quantity": 1, "unit_price": 5.0, "notes": "no salt"},
        ],
    }


def create_order(client, seed, user, table=None):
    response = client.post("/api/v1/orders", json=order_payload(seed, table), headers=auth_headers(user))
    assert response.status_code == 201, response.text
    return response.json()


def set_status(client, order_id, status, user):
    return client.put(f"/api/v1/orders/{order_id}/status", json={"status": status}, headers=auth_headers(user))


def table_row(client, user, number):
    rows = client.get("/api/v1/tables", headers=auth_headers(user)).json()
    return next(row for row in rows if row["number"] == number)


# Auth

def test_requests_without_token_are_rejected(client, seed):
    response = client.get("/api/v1/orders/active")
    assert response.status_code in (401, 403)


def test_expired_token(client, seed, waiter):
    token = create_access_token(waiter.id, waiter.role, expires_delta=timedelta(minutes=-1))
    response = client.get("/api/v1/orders/active", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired"


def test_kitchen_cannot_open_orders(client, seed, kitchen):
    response = client.post("/api/v1/orders", json=order_payload(seed), headers=auth_headers(kitchen))
    assert response.status_code == 403


# Orders

def test_create_order_and_refresh_table_view(client, db, seed, waiter):
    assert table_row(client, waiter, "5")["status"] == "available"

    order = create_order(client, seed, waiter)

    assert order["status"] == "pending"
    assert order["server_id"] == waiter.id
    assert order["total_amount"] == pytest.approx(25.0)
    assert len(order["items"]) == 2

    row = table_row(client, waiter, "5")
    assert row["status"] == "occupied"
    assert row["current_order_id"] == order["id"]


def test_empty_order_is_unprocessable(client, db, seed, waiter):
    response = client.post(
        "/api/v1/orders", json={"table_id": seed.table5.id, "items": []}, headers=auth_headers(waiter)
    )
    assert response.status_code == 422
    assert db.query(Order).count() == 0


def test_zero_quantity_is_unprocessable(client, seed, waiter):
    payload = order_payload(seed)
    payload["items"][0]["quantity"] = 0
    response = client.post("/api/v1/orders", json=payload, headers=auth_headers(waiter))
    assert response.status_code == 422


def test_order_on_unknown_table(client, seed, waiter):
    payload = order_payload(seed)
    payload["table_id"] = 999
    response = client.post("/api/v1/orders", json=payload, headers=auth_headers(waiter))
    assert response.status_code == 404


def test_status_walk_over_http(client, db, seed, waiter, kitchen):
    order = create_order(client, seed, waiter)

    assert set_status(client, order["id"], "cooking", waiter).status_code == 403
    assert set_status(client, order["id"], "ready", kitchen).status_code == 409
    assert set_status(client, order["id"], "cooking", kitchen).json()["status"] == "cooking"
    assert set_status(client, order["id"], "ready", kitchen).json()["status"] == "ready"
    assert set_status(client, order["id"], "delivered", waiter).json()["status"] == "delivered"
    assert set_status(client, order["id"], "completed", waiter).json()["status"] == "completed"

    closed = set_status(client, order["id"], "cancelled", waiter)
    assert closed.status_code == 409

    db.expire_all()
    table = db.get(Table, seed.table5.id)
    assert table.status == TableStatus.AVAILABLE
    assert table.current_order_id is None


def test_active_and_kitchen_views_track_changes(client, seed, waiter, kitchen):
    first = create_order(client, seed, waiter)
    second = create_order(client, seed, waiter, table=seed.tables[1])

    active = client.get("/api/v1/orders/active", headers=auth_headers(kitchen)).json()
    assert [o["id"] for o in active] == [first["id"], second["id"]]

    set_status(client, first["id"], "cooking", kitchen)
    set_status(client, first["id"], "ready", kitchen)
    set_status(client, first["id"], "delivered", waiter)

    kitchen_queue = client.get("/api/v1/orders/kitchen", headers=auth_headers(kitchen)).json()
    assert [o["id"] for o in kitchen_queue] == [second["id"]]
    active = client.get("/api/v1/orders/active", headers=auth_headers(kitchen)).json()
    assert {o["id"]: o["status"] for o in active} == {first["id"]: "delivered", second["id"]: "pending"}


def test_table_tab(client, seed, waiter):
    create_order(client, seed, waiter)
    create_order(client, seed, waiter)

    tab = client.get(f"/api/v1/orders/tables/{seed.table5.id}", headers=auth_headers(waiter)).json()
    assert tab["table_number"] == "5"
    assert len(tab["orders"]) == 2
    assert tab["total_amount"] == pytest.approx(50.0)


def test_replace_items_permissions(client, seed, waiter, other_waiter, admin):
    order = create_order(client, seed, waiter)
    replacement = {"items": [{"product_id": seed.soda.id, "quantity": 2, "unit_price": 2.5}]}

    response = client.put(f"/api/v1/orders/{order['id']}/items", json=replacement, headers=auth_headers(other_waiter))
    assert response.status_code == 403

    response = client.put(f"/api/v1/orders/{order['id']}/items", json=replacement, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["total_amount"] == pytest.approx(5.0)
    assert [i["product_id"] for i in response.json()["items"]] == [seed.soda.id]

    response = client.put(f"/api/v1/orders/{order['id']}/items", json={"items": []}, headers=auth_headers(admin))
    assert response.status_code == 422


def test_waiter_cannot_rewrite_own_order_over_http(client, seed, waiter):
    order = create_order(client, seed, waiter)
    cheap = {"items": [{"product_id": seed.fries.id, "quantity": 9, "unit_price": 0}]}

    response = client.put(f"/api/v1/orders/{order['id']}/items", json=cheap, headers=auth_headers(waiter))

    assert response.status_code == 403
    current = client.get(f"/api/v1/orders/{order['id']}", headers=auth_headers(waiter)).json()
    assert current["total_amount"] == pytest.approx(25.0)


def test_next_statuses_for_role(client, seed, waiter, kitchen):
    assert client.get("/api/v1/orders/statuses/pending/next", headers=auth_headers(kitchen)).json() == [
        "cooking", "cancelled"
    ]
    assert client.get("/api/v1/orders/statuses/pending/next", headers=auth_headers(waiter)).json() == ["cancelled"]
    assert client.get("/api/v1/orders/statuses/completed/next", headers=auth_headers(waiter)).json() == []


# Menu

def test_menu_lists_active_products(client, db, seed, kitchen):
    seed.soda.is_active = False
    db.commit()
    headers = auth_headers(kitchen)

    names = [p["name"] for p in client.get("/api/v1/menu/products", headers=headers).json()]
    assert names == ["Burger", "Fries"]
    everything = client.get("/api/v1/menu/products", params={"include_inactive": True}, headers=headers).json()
    assert len(everything) == 3
    assert client.get("/api/v1/menu/products/999", headers=headers).status_code == 404
    assert [c["name"] for c in client.get("/api/v1/menu/categories", headers=headers).json()] == ["Mains"]


def test_get_product_lookup(db, seed):
    assert get_product(db, seed.burger.id).name == "Burger"
    with pytest.raises(NotFound):
        get_product(db, 999)


def test_inactive_product_cannot_be_added_to_cart(client, db, seed, waiter):
    seed.soda.is_active = False
    db.commit()
    base = f"/api/v1/tables/{seed.table5.id}/cart"
    headers = auth_headers(waiter)
    client.post(base, headers=headers)

    assert client.post(f"{base}/items", json={"product_id": seed.soda.id}, headers=headers).status_code == 404


# Cart

def test_cart_flow_creates_order(client, seed, waiter):
    base = f"/api/v1/tables/{seed.table5.id}/cart"
    headers = auth_headers(waiter)

    cart = client.post(base, headers=headers).json()
    assert cart["can_edit"] is True
    assert cart["items"] == []

    client.post(f"{base}/items", json={"product_id": seed.burger.id}, headers=headers)
    client.post(f"{base}/items", json={"product_id": seed.burger.id}, headers=headers)
    cart = client.post(f"{base}/items", json={"product_id": seed.soda.id}, headers=headers).json()
    assert cart["total"] == pytest.approx(22.5)

    cart = client.patch(f"{base}/items/{seed.soda.id}", json={"delta": -1}, headers=headers).json()
    assert [i["product_id"] for i in cart["items"]] == [seed.burger.id]

    response = client.post(f"{base}/submit", headers=headers)
    assert response.status_code == 200
    assert response.json()["total_amount"] == pytest.approx(20.0)
    assert client.get(base, headers=headers).status_code == 404


def test_waiter_cart_on_busy_table_is_read_only(client, seed, waiter, other_waiter):
    create_order(client, seed, waiter)
    base = f"/api/v1/tables/{seed.table5.id}/cart"
    headers = auth_headers(other_waiter)

    cart = client.post(base, headers=headers).json()
    assert cart["can_edit"] is False
    assert [i["product_id"] for i in cart["items"]] == [seed.burger.id, seed.fries.id]

    response = client.post(f"{base}/items", json={"product_id": seed.soda.id}, headers=headers)
    assert response.status_code == 403


def test_admin_cart_edits_open_order(client, seed, waiter, admin):
    order = create_order(client, seed, waiter)
    base = f"/api/v1/tables/{seed.table5.id}/cart"
    headers = auth_headers(admin)

    cart = client.post(base, headers=headers).json()
    assert cart["active_order_id"] == order["id"]
    client.post(f"{base}/items", json={"product_id": seed.soda.id}, headers=headers)

    submitted = client.post(f"{base}/submit", headers=headers).json()
    assert submitted["id"] == order["id"]
    assert submitted["total_amount"] == pytest.approx(27.5)


def test_empty_cart_submit_keeps_session(client, seed, waiter):
    base = f"/api/v1/tables/{seed.table5.id}/cart"
    headers = auth_headers(waiter)
    client.post(base, headers=headers)

    assert client.post(f"{base}/submit", headers=headers).status_code == 422
    assert client.get(base, headers=headers).status_code == 200
    assert client.delete(base, headers=headers).status_code == 204
    assert client.delete(base, headers=headers).status_code == 404


# Reservations and tables

def test_assign_reservation_and_release(client, db, seed, waiter):
    headers = auth_headers(waiter)
    reservation = client.post("/api/v1/reservations", json={
        "customer_name": "Ana", "pax": 4, "reservation_time": "2026-10-19T21:00:00", "shift": "dinner",
    }, headers=headers).json()
    assert reservation["status"] == "confirmed"

    response = client.post(
        f"/api/v1/reservations/{reservation['id']}/assign", json={"table_id": seed.table5.id}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert table_row(client, waiter, "5")["status"] == "occupied"

    response = client.post(f"/api/v1/tables/{seed.table5.id}/release", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "available"


def test_assign_reservation_to_busy_table(client, seed, waiter):
    headers = auth_headers(waiter)
    create_order(client, seed, waiter)
    reservation = client.post("/api/v1/reservations", json={
        "customer_name": "Luis", "pax": 2, "reservation_time": "2026-10-19T13:30:00", "shift": "lunch",
    }, headers=headers).json()

    response = client.post(
        f"/api/v1/reservations/{reservation['id']}/assign", json={"table_id": seed.table5.id}, headers=headers
    )
    assert response.status_code == 409
    assert client.post(f"/api/v1/tables/{seed.table5.id}/release", headers=headers).status_code == 409


def test_reservation_cannot_be_completed_by_hand(client, seed, waiter):
    headers = auth_headers(waiter)
    reservation = client.post("/api/v1/reservations", json={
        "customer_name": "Ana", "pax": 2, "reservation_time": "2026-10-19T21:00:00", "shift": "dinner",
    }, headers=headers).json()

    response = client.put(
        f"/api/v1/reservations/{reservation['id']}/status", json={"status": "completed"}, headers=headers
    )
    assert response.status_code == 400


def test_floor_plan_is_admin_only(client, seed, waiter, admin):
    payload = {"number": "12", "capacity": 6}
    assert client.post("/api/v1/tables", json=payload, headers=auth_headers(waiter)).status_code == 403

    response = client.post("/api/v1/tables", json=payload, headers=auth_headers(admin))
    assert response.status_code == 201
    assert response.json()["status"] == "available"
    assert client.post("/api/v1/tables", json=payload, headers=auth_headers(admin)).status_code == 409


def test_table_with_history_cannot_be_deleted(client, seed, waiter, admin):
    create_order(client, seed, waiter)
    response = client.delete(f"/api/v1/tables/{seed.table5.id}", headers=auth_headers(admin))
    assert response.status_code == 409
    assert client.delete(f"/api/v1/tables/{seed.tables[1].id}", headers=auth_headers(admin)).status_code == 204


# Change notifications

def ws_url(user):
    return f"/api/v1/notifications/ws?token={create_access_token(user.id, user.role)}"


def test_focus_triggers_full_resync(client, seed, waiter):
    with client.websocket_connect(ws_url(waiter)) as ws:
        ws.send_json({"event": "focus"})
        messages = [ws.receive_json() for _ in TOPICS]

    assert messages == [{"event": "invalidate", "topic": topic} for topic in TOPICS]


def test_order_creation_is_pushed(client, seed, waiter, kitchen):
    with client.websocket_connect(ws_url(kitchen)) as ws:
        create_order(client, seed, waiter)
        topics = {ws.receive_json()["topic"] for _ in range(3)}

    assert topics == {"orders", "order_items", "tables"}


def test_socket_without_token_is_refused(client, seed):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/v1/notifications/ws"):
            pass


def test_socket_only_receives_subscribed_topics(client, seed, waiter, kitchen):
    with client.websocket_connect(ws_url(kitchen)) as ws:
        ws.send_json({"event": "unsubscribe", "topic": "orders"})
        assert ws.receive_json() == {"event": "subscriptions", "topics": ["order_items", "tables"]}
        ws.send_json({"event": "unsubscribe", "topic": "order_items"})
        assert ws.receive_json() == {"event": "subscriptions", "topics": ["tables"]}

        create_order(client, seed, waiter)
        assert ws.receive_json() == {"event": "invalidate", "topic": "tables"}

        # Resync covers only the remaining topic, so nothing else was queued in between
        ws.send_json({"event": "focus"})
        assert ws.receive_json() == {"event": "invalidate", "topic": "tables"}

        ws.send_json({"event": "subscribe", "topic": "orders"})
        assert ws.receive_json() == {"event": "subscriptions", "topics": ["orders", "tables"]}
        ws.send_json({"event": "subscribe", "topic": "payments"})
        assert ws.receive_json() == {"event": "subscriptions", "topics": ["orders", "tables"]}
