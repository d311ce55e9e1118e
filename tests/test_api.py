"""End-to-end tests for the HTTP API on an in-memory SQLite database."""
import json
from datetime import datetime, timezone

import pytest
from fastapi import Depends

from pdv.db import store as db_store
from pdv.db.session import get_db
from pdv.main import app
from pdv.services.deps import get_sale_store


def _checkout_payload(seeded, **overrides):
    payload = {
        "items": [
            {"product_id": seeded["a"].id, "quantity": 2},
            {"product_id": seeded["b"].id, "quantity": 1, "discount_percent": 10},
        ],
        "payment_method": "mpesa",
        "discount_amount": 1.0,
    }
    payload.update(overrides)
    return payload


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_login(client, users):
    res = client.post("/auth/login", json={"username": "cashier", "password": "cashier-pass"})
    assert res.status_code == 200
    body = res.json()
    assert body["role"] == "cashier"
    assert body["token_type"] == "bearer"

    res = client.get("/settings", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert res.status_code == 200


def test_login_rejects_bad_password(client, users):
    res = client.post("/auth/login", json={"username": "cashier", "password": "nope"})
    assert res.status_code == 401


def test_requires_token(client, seeded):
    assert client.get("/products").status_code == 401
    assert client.get("/products", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_checkout_example(client, seeded, auth, db):
    res = client.post(
        "/sales/checkout",
        json=_checkout_payload(seeded, customer_id=seeded["customer"]["id"], notes="Deliver tomorrow"),
        headers=auth("cashier"),
    )

    assert res.status_code == 201, res.text
    sale = res.json()
    assert sale["total_amount"] == 15.38
    assert sale["tax_amount"] == 2.38
    assert sale["discount_amount"] == 1.0
    assert sale["customer_name"] == "João Silva"
    assert [i["total_price"] for i in sale["items"]] == [5.0, 9.0]

    assert db_store.get_product(db, seeded["a"].id).stock == 8
    assert db_store.get_product(db, seeded["b"].id).stock == 4

    receipt = client.get(f"/sales/{sale['id']}/receipt", headers=auth("cashier"))
    assert receipt.status_code == 200
    assert receipt.headers["content-disposition"] == f'attachment; filename="receipt-{sale["id"][-8:]}.txt"'
    assert "TOTAL: MT 15.38" in receipt.text
    assert "Tax (17%): MT 2.38" in receipt.text
    assert "Customer: João Silva" in receipt.text


def test_checkout_validation_errors(client, seeded, auth):
    res = client.post("/sales/checkout", json=_checkout_payload(seeded, items=[]), headers=auth("cashier"))
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "empty_cart"

    res = client.post("/sales/checkout", json=_checkout_payload(seeded, payment_method=None), headers=auth("cashier"))
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "missing_payment_method"

    res = client.post("/sales/checkout", json=_checkout_payload(seeded, discount_amount=-5), headers=auth("cashier"))
    assert res.json()["error"]["code"] == "negative_discount"


def test_checkout_over_stock_is_conflict(client, seeded, auth, db):
    payload = _checkout_payload(seeded, items=[{"product_id": seeded["b"].id, "quantity": 6}])

    res = client.post("/sales/checkout", json=payload, headers=auth("cashier"))

    assert res.status_code == 409
    assert res.json()["error"] == {
        "code": "stock_exceeded",
        "message": "Only 5 of Rice 5kg in stock, cannot hold 6",
        "product_id": seeded["b"].id,
    }
    assert db_store.list_sales(db) == []


def test_checkout_unknown_product(client, seeded, auth):
    payload = _checkout_payload(seeded, items=[{"product_id": "missing", "quantity": 1}])
    assert client.post("/sales/checkout", json=payload, headers=auth("cashier")).status_code == 404


def test_viewer_cannot_sell(client, seeded, auth):
    res = client.post("/sales/checkout", json=_checkout_payload(seeded), headers=auth("viewer"))
    assert res.status_code == 403
    assert "process_sales" in res.json()["detail"]


def test_preview_lists_all_problems(client, seeded, auth):
    payload = _checkout_payload(seeded, payment_method="cheque", discount_amount=-1)

    res = client.post("/sales/preview", json=payload, headers=auth("cashier"))

    assert res.status_code == 200
    body = res.json()
    assert body["subtotal"] == 14.0
    assert body["item_count"] == 3
    assert [e["code"] for e in body["errors"]] == ["missing_payment_method", "negative_discount"]


def test_products_search_and_low_stock(client, seeded, auth):
    res = client.get("/products", params={"q": "grains"}, headers=auth("viewer"))
    assert sorted(p["name"] for p in res.json()) == ["Black Beans 1kg", "Rice 5kg"]

    res = client.get("/products/by-barcode/789000111", headers=auth("viewer"))
    assert res.json()["name"] == "Coca-Cola 350ml"

    res = client.get("/inventory/alerts/low-stock", headers=auth("viewer"))
    assert [p["name"] for p in res.json()] == ["Black Beans 1kg", "Rice 5kg"]


def test_product_management(client, seeded, auth):
    res = client.post("/products", json={"name": "Milk 1L", "price": 4.2, "stock": 30}, headers=auth("cashier"))
    assert res.status_code == 201
    product_id = res.json()["id"]

    res = client.post(f"/products/{product_id}/stock", json={"delta": -31}, headers=auth("cashier"))
    assert res.status_code == 409

    res = client.post(f"/products/{product_id}/stock", json={"delta": -10, "reason": "damaged"}, headers=auth("cashier"))
    assert res.json()["stock"] == 20

    res = client.patch(f"/products/{product_id}", json={"price": 4.5}, headers=auth("cashier"))
    assert res.json()["price"] == 4.5

    assert client.post("/products", json={"name": "X", "price": 1}, headers=auth("viewer")).status_code == 403


def test_customers(client, auth):
    res = client.post("/customers", json={"name": "Ana Costa", "email": "ana@email.com"}, headers=auth("cashier"))
    assert res.status_code == 201
    customer_id = res.json()["id"]

    res = client.put(f"/customers/{customer_id}", json={"name": "Ana Costa", "phone": "+258 85 321 9876"}, headers=auth("cashier"))
    assert res.json()["phone"] == "+258 85 321 9876"

    assert [c["name"] for c in client.get("/customers", headers=auth("cashier")).json()] == ["Ana Costa"]


def test_settings_update_changes_tax_and_receipt(client, seeded, auth):
    res = client.put("/settings", json={"tax_rate": 0, "company_name": "Loja Central"}, headers=auth("cashier"))
    assert res.status_code == 403

    res = client.put("/settings", json={"tax_rate": 0, "company_name": "Loja Central"}, headers=auth("admin"))
    assert res.status_code == 200
    assert res.json()["tax_rate"] == 0

    sale = client.post("/sales/checkout", json=_checkout_payload(seeded), headers=auth("cashier")).json()
    assert sale["tax_amount"] == 0
    assert sale["total_amount"] == 13.0

    receipt = client.get(f"/sales/{sale['id']}/receipt", headers=auth("viewer")).text
    assert receipt.startswith("Loja Central\n")
    assert "Tax" not in receipt


def test_reports(client, seeded, auth):
    client.post("/sales/checkout", json=_checkout_payload(seeded), headers=auth("cashier"))
    client.post(
        "/sales/checkout",
        json=_checkout_payload(seeded, items=[{"product_id": seeded["a"].id, "quantity": 1}], payment_method="cash", discount_amount=0),
        headers=auth("cashier"),
    )

    history = client.get("/sales", headers=auth("viewer")).json()
    assert len(history) == 2

    summary = client.get("/dashboard/summary", headers=auth("viewer")).json()
    assert summary["total_sales"] == 2
    assert summary["revenue_by_payment_method"]["mpesa"] == 15.38

    assert client.get("/reports/sales.csv", headers=auth("cashier")).status_code == 403
    res = client.get("/reports/sales.csv", headers=auth("admin"))
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    rows = res.text.splitlines()
    assert rows[0] == "ID,Date,Customer,Total,Payment,Items"
    assert len(rows) == 3
    today = datetime.now(timezone.utc).strftime("%d/%m/%Y")
    assert all(today in row for row in rows[1:])


def _post_raw_json(client, url, payload, headers):
    # json.dumps writes NaN and Infinity literals, which the server's JSON parser accepts.
    return client.post(url, content=json.dumps(payload), headers={**headers, "Content-Type": "application/json"})


@pytest.mark.parametrize(
    "order_fields, line_fields",
    [
        ({"discount_amount": float("nan")}, {}),
        ({"discount_amount": float("inf")}, {}),
        ({}, {"discount_percent": float("nan")}),
        ({}, {"discount_percent": 101}),
        ({}, {"quantity": 0}),
    ],
)
def test_checkout_rejects_malformed_numbers(client, seeded, auth, db, order_fields, line_fields):
    payload = _checkout_payload(seeded, **order_fields)
    payload["items"][0].update(line_fields)

    res = _post_raw_json(client, "/sales/checkout", payload, auth("cashier"))

    assert res.status_code == 422
    assert db_store.list_sales(db) == []
    assert db_store.get_product(db, seeded["a"].id).stock == 10


def _use_sale_store(factory):
    def override(db=Depends(get_db)):
        return factory(db)

    app.dependency_overrides[get_sale_store] = override


class _AutocommitSaleStore(db_store.SqlSaleStore):
    """Writes each step on its own, like a store without transactions."""

    transactional = False

    def __init__(self, db, fail_decrement_on=None):
        super().__init__(db)
        self.fail_decrement_on = fail_decrement_on

    def insert_sale(self, draft):
        sale = super().insert_sale(draft)
        self.db.commit()
        return sale

    def decrement_stock(self, product_id, quantity):
        if product_id == self.fail_decrement_on:
            raise RuntimeError("inventory service unavailable")
        super().decrement_stock(product_id, quantity)
        self.db.commit()


class _BrokenSaleStore(db_store.SqlSaleStore):
    def insert_sale(self, draft):
        raise RuntimeError("disk full")


def test_partial_commit_response_carries_reconciliation_details(client, seeded, auth, db):
    _use_sale_store(lambda session: _AutocommitSaleStore(session, fail_decrement_on=seeded["b"].id))

    res = client.post("/sales/checkout", json=_checkout_payload(seeded), headers=auth("cashier"))

    assert res.status_code == 500
    error = res.json()["error"]
    assert error["code"] == "partial_commit_failure"
    assert error["decremented"] == [seeded["a"].id]
    assert error["failed_product_id"] == seeded["b"].id
    assert db_store.get_sale(db, error["sale_id"]) is not None
    assert db_store.get_product(db, seeded["a"].id).stock == 8
    assert db_store.get_product(db, seeded["b"].id).stock == 5


def test_persistence_failure_response(client, seeded, auth, db):
    _use_sale_store(_BrokenSaleStore)

    res = client.post("/sales/checkout", json=_checkout_payload(seeded), headers=auth("cashier"))

    assert res.status_code == 500
    assert res.json()["error"] == {"code": "persistence_failure", "message": "Could not record sale: disk full"}
    assert db_store.list_sales(db) == []
    assert db_store.get_product(db, seeded["a"].id).stock == 10
