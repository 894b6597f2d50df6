from decimal import Decimal

import pytest

from conftest import PASSWORD, USER


@pytest.fixture
def setup(client):
    customer = client.post("/customers", json={"code": "c001", "name": "Ramesh Patil", "village": "Wadgaon"})
    assert customer.status_code == 201
    product = client.post("/products", json={"code": "FEED", "name": "Cattle Feed", "unit": "KG",
                                             "unit_price": "100", "reorder_level": "5"})
    assert product.status_code == 201
    purchase = client.post(f"/products/{product.json['id']}/purchases", json={"quantity": "50", "unit_price": "80"})
    assert purchase.status_code == 201
    cycle = client.post("/cycles", json={"customer_id": customer.json["id"], "start_date": "2025-01-01"})
    assert cycle.status_code == 201
    return {"customer": customer.json, "product": product.json, "cycle": cycle.json}


def test_login_required(app):
    anonymous = app.test_client()
    response = anonymous.get("/customers")
    assert response.status_code == 401
    assert response.json == {"error": "Login required"}


def test_bad_login(app):
    response = app.test_client().post("/auth/login", json={"username": USER, "password": "wrong"})
    assert response.status_code == 401


def test_logout(client):
    assert client.post("/auth/logout").status_code == 200
    assert client.get("/").status_code == 401


def test_customer_crud(client):
    created = client.post("/customers", json={"code": "c9", "name": "Anita More"}).json
    assert created["code"] == "C9"
    assert created["created_by"] == USER

    duplicate = client.post("/customers", json={"code": "C9", "name": "Someone Else"})
    assert duplicate.status_code == 400
    assert duplicate.json["error"] == "Customer code 'C9' already exists"

    updated = client.put(f"/customers/{created['id']}", json={"name": "Anita S. More", "phone": "98220"})
    assert updated.json["name"] == "Anita S. More"
    assert client.post(f"/customers/{created['id']}/deactivate").json["is_active"] is False
    assert client.get("/customers?active=1").json["customers"] == []
    assert client.post(f"/customers/{created['id']}/activate").json["is_active"] is True
    assert [c["code"] for c in client.get("/customers?q=anita").json["customers"]] == ["C9"]
    assert client.get("/customers/999").status_code == 404


def test_inactive_customer_cannot_open_cycle(client):
    customer = client.post("/customers", json={"code": "C2", "name": "Suresh"}).json
    client.post(f"/customers/{customer['id']}/deactivate")
    response = client.post("/cycles", json={"customer_id": customer["id"], "start_date": "2025-01-01"})
    assert response.status_code == 409


def test_ten_day_cycle_by_default(setup):
    cycle = setup["cycle"]
    assert cycle["start_date"] == "2025-01-01"
    assert cycle["end_date"] == "2025-01-10"
    assert cycle["duration_days"] == 10
    assert cycle["total_milk_amount"] == "0.00"


def test_validation_errors_map_to_400(client, setup):
    cycle_id = setup["cycle"]["id"]
    assert client.put(f"/cycles/{cycle_id}/milk-amount", json={"amount": "-1"}).status_code == 400
    assert client.post("/cycles", json={"customer_id": "x", "start_date": "2025-01-01"}).status_code == 400
    assert client.post("/cycles", json={"customer_id": setup["customer"]["id"],
                                        "start_date": "2025-01-10", "end_date": "2025-01-01"}).status_code == 400


def test_full_cycle_to_receipt(client, setup):
    cycle_id = setup["cycle"]["id"]
    customer_id = setup["customer"]["id"]
    product_id = setup["product"]["id"]

    assert client.put(f"/cycles/{cycle_id}/milk-amount", json={"amount": "1000"}).status_code == 200
    sale = client.post(f"/cycles/{cycle_id}/sales", json={
        "customer_id": customer_id, "product_id": product_id, "quantity": "2", "sale_date": "2025-01-03"})
    assert sale.status_code == 201
    assert sale.json["total_amount"] == "200.00"
    advance = client.post(f"/cycles/{cycle_id}/advances", json={
        "customer_id": customer_id, "amount": "100", "payment_mode": "Cash", "payment_date": "2025-01-05"})
    assert advance.status_code == 201

    preview = client.get(f"/cycles/{cycle_id}/preview").json
    assert preview["final_payable"] == "700.00"
    assert preview["can_be_settled"] is True

    settled = client.post(f"/cycles/{cycle_id}/settle", json={"payment_mode": "Cash"})
    assert settled.status_code == 201
    settlement = settled.json
    assert settlement["final_payable"] == "700.00"
    assert [d["detail_type"] for d in settlement["details"]] == ["Milk", "ProductSale", "Advance"]

    again = client.post(f"/cycles/{cycle_id}/settle", json={"payment_mode": "Cash"})
    assert again.status_code == 409
    blocked = client.post(f"/cycles/{cycle_id}/sales", json={
        "customer_id": customer_id, "product_id": product_id, "quantity": "1"})
    assert blocked.status_code == 409

    detail = client.get(f"/cycles/{cycle_id}").json
    assert detail["is_settled"] is True
    assert detail["settlement_id"] == settlement["id"]
    assert len(detail["product_sales"]) == 1

    receipt = client.get(f"/settlements/{settlement['id']}/receipt")
    assert receipt.mimetype == "text/plain"
    text = receipt.get_data(as_text=True)
    assert "Name: Ramesh Patil" in text
    assert "Net Payable:" + " " * 11 + "Rs.700.00" in text

    pdf = client.get(f"/settlements/{settlement['id']}/receipt.pdf")
    assert pdf.status_code == 200
    assert pdf.mimetype == "application/pdf"
    assert pdf.data.startswith(b"%PDF")

    assert client.get(f"/settlements/{settlement['id']}/verify").json["consistent"] is True
    assert [s["id"] for s in client.get("/settlements?unpaid=1").json["settlements"]] == [settlement["id"]]
    paid = client.post(f"/settlements/{settlement['id']}/pay", json={"payment_reference": "VCH-1"})
    assert paid.json["is_paid"] is True
    assert client.post(f"/settlements/{settlement['id']}/pay").status_code == 409
    assert client.get("/settlements?unpaid=1").json["settlements"] == []
    assert len(client.get(f"/settlements?customer_id={customer_id}").json["settlements"]) == 1


def test_insufficient_stock_is_reported(client, setup):
    response = client.post(f"/cycles/{setup['cycle']['id']}/sales", json={
        "customer_id": setup["customer"]["id"], "product_id": setup["product"]["id"], "quantity": "50.01"})
    assert response.status_code == 400
    assert response.json["error"].startswith("Insufficient stock")
    product = client.get(f"/products/{setup['product']['id']}").json
    assert Decimal(product["current_stock"]) == Decimal("50")


def test_non_cash_advance_requires_reference(client, setup):
    response = client.post(f"/cycles/{setup['cycle']['id']}/advances", json={
        "customer_id": setup["customer"]["id"], "amount": "100", "payment_mode": "UPI"})
    assert response.status_code == 400


def test_dashboard_and_reorder(client, setup):
    stats = client.get("/").json
    assert stats["active_customers"] == 1
    assert stats["open_cycles"] == 1
    assert stats["unpaid_settlements"] == 0
    assert stats["products_needing_reorder"] == 0
    client.post("/products", json={"code": "MIN", "name": "Mineral Mix", "unit": "KG", "unit_price": "250"})
    assert [p["code"] for p in client.get("/products/reorder").json["products"]] == ["MIN"]


def test_unknown_settlement(client):
    response = client.get("/settlements/42")
    assert response.status_code == 404
    assert response.json["error"] == "Settlement 42 not found"


def test_login_with_form_fields(app):
    response = app.test_client().post("/auth/login", data={"username": USER, "password": PASSWORD})
    assert response.status_code == 200


def test_values_finer_than_storage_are_rejected(client, setup):
    cycle_id = setup["cycle"]["id"]
    milk = client.put(f"/cycles/{cycle_id}/milk-amount", json={"amount": "1000.005"})
    assert milk.status_code == 400
    assert milk.json["error"] == "Milk amount cannot have more than 2 decimal places"
    sale = client.post(f"/cycles/{cycle_id}/sales", json={
        "customer_id": setup["customer"]["id"], "product_id": setup["product"]["id"], "quantity": "0.0004"})
    assert sale.status_code == 400
    assert client.get(f"/cycles/{cycle_id}").json["total_milk_amount"] == "0.00"
    product = client.get(f"/products/{setup['product']['id']}").json
    assert Decimal(product["current_stock"]) == Decimal("50")
