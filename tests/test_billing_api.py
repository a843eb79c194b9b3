from decimal import Decimal

import pytest

from app.models import AuditEvent, Invoice, Service


@pytest.fixture()
def catalog(db):
    return {s.code: s for s in db.query(Service).all()}


@pytest.fixture()
def create_invoice(client, billing_headers):
    def _create_invoice(patient_id: int, items: list, tax_rate=0, **extra):
        body = {"patientId": patient_id, "items": items, "taxRate": tax_rate, **extra}
        return client.post("/api/billing/invoices", json=body, headers=billing_headers)

    return _create_invoice


def pay(client, headers, invoice_id, amount, method="cash"):
    return client.post(
        f"/api/billing/invoices/{invoice_id}/payments", json={"amount": amount, "method": method}, headers=headers
    )


def test_invoice_totals_and_number(create_invoice, patient, catalog):
    consult, lab = catalog["CONS-GEN"], catalog["LAB-HEM"]
    response = create_invoice(
        patient.id,
        [
            {"serviceId": consult.id, "description": "Consulta", "quantity": 2, "unitPrice": 35.00},
            {"serviceId": lab.id, "description": "Hemograma", "quantity": 1, "unitPrice": 15.00},
        ],
        tax_rate=12,
    )
    assert response.status_code == 201
    invoice = response.json()
    assert invoice["invoice_number"] == "FAC-2026-000001"
    assert invoice["subtotal"] == 85.00
    assert invoice["tax"] == 10.20
    assert invoice["total"] == 95.20
    assert invoice["status"] == "draft"
    assert invoice["payment_status"] == "pending"
    assert [d["subtotal"] for d in invoice["details"]] == [70.00, 15.00]


def test_invoice_numbers_are_sequential(create_invoice, patient):
    items = [{"description": "Consulta", "unitPrice": 35}]
    numbers = [create_invoice(patient.id, items).json()["invoice_number"] for _ in range(2)]
    assert numbers == ["FAC-2026-000001", "FAC-2026-000002"]


def test_invoice_without_items_is_rejected(create_invoice, patient):
    response = create_invoice(patient.id, [])
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationFailed"


def test_invoice_for_missing_patient_or_service(create_invoice, patient):
    assert create_invoice(9999, [{"description": "X", "unitPrice": 1}]).status_code == 404
    response = create_invoice(patient.id, [{"serviceId": 9999, "description": "X", "unitPrice": 1}])
    assert response.status_code == 404
    assert response.json()["serviceIds"] == [9999]


def test_overpayment_is_rejected_and_balance_reported(client, billing_headers, create_invoice, patient, db):
    invoice = create_invoice(patient.id, [{"description": "Procedimiento", "unitPrice": 100}]).json()

    first = pay(client, billing_headers, invoice["id"], 80)
    assert first.status_code == 201
    assert first.json()["invoiceBalance"] == {"total": 100.0, "paid": 80.0, "remaining": 20.0, "status": "partial"}

    over = pay(client, billing_headers, invoice["id"], 25)
    assert over.status_code == 409
    assert over.json()["remaining"] == 20.0

    last = pay(client, billing_headers, invoice["id"], 20)
    assert last.status_code == 201
    assert last.json()["invoiceBalance"]["status"] == "paid"
    assert last.json()["invoiceBalance"]["remaining"] == 0.0

    stored = client.get(f"/api/billing/invoices/{invoice['id']}", headers=billing_headers).json()
    assert [p["amount"] for p in stored["payments"]] == [80.0, 20.0]
    assert stored["payment_status"] == "paid"


def test_payment_within_tolerance_settles_the_invoice(client, billing_headers, create_invoice, patient):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": "50.00"}]).json()
    response = pay(client, billing_headers, invoice["id"], "50.01")
    assert response.status_code == 201
    assert response.json()["invoiceBalance"]["status"] == "paid"


def test_payment_promotes_draft_to_issued(client, billing_headers, create_invoice, patient, clock):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": 35}]).json()
    assert invoice["issued_at"] is None

    pay(client, billing_headers, invoice["id"], 10)
    stored = client.get(f"/api/billing/invoices/{invoice['id']}", headers=billing_headers).json()
    assert stored["status"] == "issued"
    assert stored["issued_at"] == clock.now().isoformat()
    assert stored["payment_status"] == "partial"


def test_only_drafts_can_be_issued(client, billing_headers, create_invoice, patient):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": 35}]).json()
    url = f"/api/billing/invoices/{invoice['id']}/issue"

    assert client.put(url, headers=billing_headers).json()["status"] == "issued"
    again = client.put(url, headers=billing_headers)
    assert again.status_code == 400
    assert again.json()["error"] == "ForbiddenTransition"


def test_cancelled_invoice_rejects_payments(client, billing_headers, create_invoice, patient):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": 35}]).json()
    cancelled = client.put(
        f"/api/billing/invoices/{invoice['id']}/cancel", json={"reason": "Duplicated"}, headers=billing_headers
    ).json()
    assert cancelled["status"] == "cancelled"
    assert cancelled["notes"] == "[ANULADA] Duplicated"

    response = pay(client, billing_headers, invoice["id"], 10)
    assert response.status_code == 400
    assert response.json()["error"] == "ForbiddenTransition"


def test_cancel_keeps_recorded_payments(client, billing_headers, create_invoice, patient):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": 35}]).json()
    pay(client, billing_headers, invoice["id"], 35)

    cancelled = client.put(
        f"/api/billing/invoices/{invoice['id']}/cancel", json={}, headers=billing_headers
    ).json()
    assert cancelled["status"] == "cancelled"
    assert cancelled["payment_status"] == "paid"
    assert cancelled["notes"] == "[ANULADA]"
    assert len(cancelled["payments"]) == 1


def test_non_positive_payment_is_rejected(client, billing_headers, create_invoice, patient):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": 35}]).json()
    for amount in (0, -5):
        response = pay(client, billing_headers, invoice["id"], amount)
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationFailed"


def test_payment_on_missing_invoice(client, billing_headers):
    assert pay(client, billing_headers, 9999, 10).status_code == 404


def test_totals_are_frozen_after_catalog_price_change(client, billing_headers, create_invoice, patient, catalog, db):
    consult = catalog["CONS-GEN"]
    invoice = create_invoice(
        patient.id, [{"serviceId": consult.id, "description": "Consulta", "unitPrice": 35}]
    ).json()

    consult.price = Decimal("99.00")
    db.commit()

    stored = client.get(f"/api/billing/invoices/{invoice['id']}", headers=billing_headers).json()
    assert stored["total"] == 35.0


def test_accounts_receivable_lists_open_invoices_oldest_first(
    client, billing_headers, create_invoice, patient, clock
):
    from datetime import timedelta

    older = create_invoice(patient.id, [{"description": "A", "unitPrice": 100}]).json()
    clock.advance(timedelta(hours=1))
    newer = create_invoice(patient.id, [{"description": "B", "unitPrice": 40}]).json()
    clock.advance(timedelta(hours=1))
    settled = create_invoice(patient.id, [{"description": "C", "unitPrice": 10}]).json()
    clock.advance(timedelta(hours=1))
    voided = create_invoice(patient.id, [{"description": "D", "unitPrice": 10}]).json()

    pay(client, billing_headers, older["id"], 30)
    pay(client, billing_headers, settled["id"], 10)
    client.put(f"/api/billing/invoices/{voided['id']}/cancel", json={}, headers=billing_headers)

    rows = client.get("/api/billing/accounts-receivable", headers=billing_headers).json()
    assert [r["id"] for r in rows] == [older["id"], newer["id"]]
    assert rows[0]["totalPaid"] == 30.0
    assert rows[0]["balance"] == 70.0
    assert rows[1]["balance"] == 40.0


def test_list_invoices_filters_by_payment_status(client, billing_headers, create_invoice, patient):
    paid = create_invoice(patient.id, [{"description": "A", "unitPrice": 10}]).json()
    create_invoice(patient.id, [{"description": "B", "unitPrice": 10}])
    pay(client, billing_headers, paid["id"], 10)

    page = client.get(
        "/api/billing/invoices", params={"paymentStatus": "paid"}, headers=billing_headers
    ).json()
    assert [i["id"] for i in page["data"]] == [paid["id"]]
    assert page["pagination"]["total"] == 1


def test_service_catalog(client, billing_headers, reception_headers):
    created = client.post(
        "/api/billing/services",
        json={"code": "ECO-ABD", "name": "Ecografía abdominal", "price": "45.50", "category": "imaging"},
        headers=billing_headers,
    )
    assert created.status_code == 201
    assert created.json()["price"] == 45.5

    duplicate = client.post(
        "/api/billing/services", json={"code": "ECO-ABD", "name": "Otra", "price": 1}, headers=billing_headers
    )
    assert duplicate.status_code == 409

    listed = client.get("/api/billing/services", params={"category": "imaging"}, headers=reception_headers).json()
    assert "ECO-ABD" in [s["code"] for s in listed]


def test_reception_cannot_create_invoices(client, reception_headers, patient):
    response = client.post(
        "/api/billing/invoices",
        json={"patientId": patient.id, "items": [{"description": "X", "unitPrice": 1}]},
        headers=reception_headers,
    )
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


def test_payments_are_audited(client, billing_headers, create_invoice, patient, db):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": 35}]).json()
    pay(client, billing_headers, invoice["id"], 35)

    db.expire_all()
    actions = [e.action for e in db.query(AuditEvent).filter(AuditEvent.module == "billing").order_by(AuditEvent.id)]
    assert actions == ["CREATE", "PAYMENT"]
    assert db.get(Invoice, invoice["id"]).payment_status == "paid"


def test_fractions_of_a_cent_are_rejected(client, billing_headers, create_invoice, patient, db):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": 35}]).json()

    response = pay(client, billing_headers, invoice["id"], "0.004")
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationFailed"

    db.expire_all()
    stored = db.get(Invoice, invoice["id"])
    assert stored.payments == []
    assert stored.payment_status == "pending"

    priced = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": "12.345"}])
    assert priced.status_code == 400
    assert priced.json()["unitPrices"] == ["12.345"]


def test_trailing_zeros_are_whole_cents(client, billing_headers, create_invoice, patient):
    invoice = create_invoice(patient.id, [{"description": "Consulta", "unitPrice": "35.000"}]).json()
    response = pay(client, billing_headers, invoice["id"], "10.500")
    assert response.status_code == 201
    assert response.json()["invoiceBalance"] == {"total": 35.0, "paid": 10.5, "remaining": 24.5, "status": "partial"}
