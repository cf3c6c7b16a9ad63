"""HTTP tests for /billing (tax preview and invoices)."""
from decimal import Decimal


def _dec(value) -> Decimal:
    return Decimal(str(value))


class TestTaxApi:

    def test_company_with_tds(self, api_client, auth_headers):
        response = api_client.post(
            "/billing/tax/calculate",
            json={"subtotal": "1000", "isTDSApplicable": True, "clientType": "company"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert _dec(body["result"]["grandTotal"]) == Decimal("1080.00")
        assert _dec(body["result"]["tdsAmount"]) == Decimal("100.00")
        assert body["summary"] == "CGST: ₹90.00, SGST: ₹90.00, TDS: ₹100.00"
        assert body["isValid"] is True

    def test_inter_state(self, api_client, auth_headers):
        body = api_client.post(
            "/billing/tax/calculate",
            json={"subtotal": "1000", "isInterState": True},
            headers=auth_headers,
        ).json()
        assert _dec(body["result"]["igstAmount"]) == Decimal("180.00")
        assert body["summary"] == "IGST: ₹180.00"

    def test_negative_subtotal(self, api_client, auth_headers):
        response = api_client.post("/billing/tax/calculate", json={"subtotal": "-5"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TAX_INPUT"

    def test_requires_authentication(self, api_client):
        assert api_client.post("/billing/tax/calculate", json={"subtotal": "10"}).status_code == 401

    def test_rates_for_company(self, api_client, auth_headers):
        body = api_client.get("/billing/tax/rates", params={"clientType": "company"}, headers=auth_headers).json()
        assert body["clientType"] == "company"
        assert _dec(body["tdsRate"]) == Decimal("0.10")
        assert _dec(body["cgstRate"]) == Decimal("0.09")

    def test_rates_for_individual(self, api_client, auth_headers):
        body = api_client.get("/billing/tax/rates", headers=auth_headers).json()
        assert _dec(body["tdsRate"]) == Decimal("0.05")

    def test_expense(self, api_client, auth_headers):
        body = api_client.post(
            "/billing/tax/expense", json={"amount": "500"}, headers=auth_headers
        ).json()
        assert _dec(body["result"]["gstAmount"]) == Decimal("90.00")
        assert _dec(body["result"]["grandTotal"]) == Decimal("590.00")

    def test_reimbursable_expense(self, api_client, auth_headers):
        body = api_client.post(
            "/billing/tax/expense", json={"amount": "500", "isReimbursable": True}, headers=auth_headers
        ).json()
        assert _dec(body["result"]["totalTax"]) == Decimal("0")
        assert _dec(body["result"]["grandTotal"]) == Decimal("500.00")


class TestInvoiceApi:

    def test_create_read_update(self, api_client, auth_headers, practice):
        response = api_client.post(
            "/billing/invoices",
            json={
                "clientId": practice.company.id,
                "caseId": practice.cases[0].id,
                "items": [{"description": "Drafting", "quantity": "2", "unitRate": "500"}],
            },
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        created = response.json()
        assert created["status"] == "draft"
        assert _dec(created["amount"]) == Decimal("1080.00")
        assert created["items"][0]["description"] == "Drafting"

        fetched = api_client.get(f"/billing/invoices/{created['id']}", headers=auth_headers).json()
        assert fetched["invoiceNumber"] == created["invoiceNumber"]

        updated = api_client.put(
            f"/billing/invoices/{created['id']}", json={"status": "sent"}, headers=auth_headers
        ).json()
        assert updated["status"] == "sent"
        assert _dec(updated["amount"]) == Decimal("1080.00")

    def test_unknown_invoice(self, api_client, auth_headers):
        response = api_client.get("/billing/invoices/missing", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "INVOICE_NOT_FOUND"

    def test_unknown_client(self, api_client, auth_headers):
        response = api_client.post(
            "/billing/invoices",
            json={"clientId": "missing", "items": [{"description": "Advice", "unitRate": "100"}]},
            headers=auth_headers,
        )
        assert response.status_code == 404
        assert response.json()["code"] == "CLIENT_NOT_FOUND"

    def test_empty_items_rejected(self, api_client, auth_headers, practice):
        response = api_client.post(
            "/billing/invoices", json={"clientId": practice.company.id, "items": []}, headers=auth_headers
        )
        assert response.status_code == 422
