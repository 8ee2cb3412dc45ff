"""
HTTP API Tests

Exercises the sales and purchase blueprints end to end through the Flask test
client, including status code mapping for every domain error and the CLI.
"""

import io
import os

import pytest

from conftest import gateway_headers, make_product, stock_of


def _online_sale(client, tenant, product, *, method="CASH", quantity=1):
    resp = client.post(
        "/api/sales",
        json={
            "channel": "online",
            "payment_method": method,
            "lines": [{"product_id": product.id, "quantity": quantity}],
        },
        headers=gateway_headers(tenant.id),
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["sale"]


# =============================================================================
# AUTH: 401 / 403
# =============================================================================


class TestGatewayHeaders:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("GET", "/api/sales/1"),
            ("POST", "/api/sales/1/approve"),
            ("GET", "/api/sales/1/document"),
            ("POST", "/api/purchases"),
            ("GET", "/api/purchases"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "UNAUTHENTICATED"

    def test_non_numeric_tenant_is_401(self, client, db_session):
        resp = client.get("/api/sales", headers={"X-Tenant-Id": "abc", "X-User-Role": "OWNER"})
        assert resp.status_code == 401

    def test_seller_cannot_register_purchases(self, client, tenant_a, product):
        resp = client.post(
            "/api/purchases",
            json={"payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 1, "unit_cost_cents": 1}]},
            headers=gateway_headers(tenant_a.id, role="SELLER"),
        )
        assert resp.status_code == 403
        assert resp.get_json()["details"]["role"] == "SELLER"
        assert stock_of(product.id) == 10

    def test_unknown_role_cannot_sell(self, client, tenant_a):
        resp = client.get("/api/sales", headers=gateway_headers(tenant_a.id, role="AUDITOR"))
        assert resp.status_code == 403


# =============================================================================
# SALES
# =============================================================================


class TestSalesApi:

    def test_pos_checkout(self, client, tenant_a, product):
        resp = client.post(
            "/api/sales",
            json={
                "channel": "PHYSICAL",
                "payment_method": "CASH",
                "amount_received_cents": 5000,
                "lines": [{"product_id": product.id, "quantity": 3}],
            },
            headers=gateway_headers(tenant_a.id),
        )

        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["status"] == "PAID"
        assert sale["total_cents"] == 3750
        assert sale["change_cents"] == 1250
        assert sale["created_by_user_id"] == 7
        assert sale["lines"][0]["unit_price_cents"] == 1250
        assert stock_of(product.id) == 7

    def test_invalid_body_lists_every_problem(self, client, tenant_a):
        resp = client.post(
            "/api/sales",
            json={"channel": "DRIVE_THRU", "lines": [{"product_id": "x", "quantity": 0}]},
            headers=gateway_headers(tenant_a.id),
        )

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "VALIDATION_ERROR"
        assert len(body["details"]["errors"]) == 4

    def test_pos_shortfall_is_409(self, client, db_session, tenant_a):
        p = make_product(db_session, tenant_a, name="Scarce", stock=1)

        resp = client.post(
            "/api/sales",
            json={"channel": "PHYSICAL", "payment_method": "CASH", "lines": [{"product_id": p.id, "quantity": 2}]},
            headers=gateway_headers(tenant_a.id),
        )

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["items"] == [
            {"product_id": p.id, "product_name": "Scarce", "requested": 2, "available": 1}
        ]

    def test_approve_flow_and_double_approve(self, client, tenant_a, product):
        sale = _online_sale(client, tenant_a, product, quantity=4)
        headers = gateway_headers(tenant_a.id)

        first = client.post(f"/api/sales/{sale['id']}/approve", headers=headers)
        second = client.post(f"/api/sales/{sale['id']}/approve", headers=headers)

        assert first.status_code == 200
        assert first.get_json()["sale"]["status"] == "PAID"
        assert second.status_code == 409
        assert second.get_json()["code"] == "INVALID_STATE"
        assert stock_of(product.id) == 6

    def test_qr_approve_without_proof_is_422(self, client, tenant_a, product):
        sale = _online_sale(client, tenant_a, product, method="QR")

        resp = client.post(f"/api/sales/{sale['id']}/approve", headers=gateway_headers(tenant_a.id))

        assert resp.status_code == 422
        assert resp.get_json()["code"] == "MISSING_PROOF"
        assert stock_of(product.id) == 10

    def test_upload_proof_then_approve(self, client, tenant_a, product):
        sale = _online_sale(client, tenant_a, product, method="TRANSFER")
        headers = gateway_headers(tenant_a.id)

        upload = client.post(
            f"/api/sales/{sale['id']}/payment-proof",
            data={"file": (io.BytesIO(b"\x89PNG fake receipt"), "receipt.png")},
            content_type="multipart/form-data",
            headers=headers,
        )
        assert upload.status_code == 200
        ref = upload.get_json()["sale"]["payment_proof_ref"]
        assert ref.startswith(f"{tenant_a.id}/")
        assert ref.endswith(".png")

        approve = client.post(f"/api/sales/{sale['id']}/approve", headers=headers)
        assert approve.status_code == 200
        assert stock_of(product.id) == 9

    def test_upload_rejects_disallowed_extension(self, client, tenant_a, product):
        sale = _online_sale(client, tenant_a, product, method="QR")

        resp = client.post(
            f"/api/sales/{sale['id']}/payment-proof",
            data={"file": (io.BytesIO(b"#!/bin/sh"), "proof.sh")},
            content_type="multipart/form-data",
            headers=gateway_headers(tenant_a.id),
        )

        assert resp.status_code == 400

    def test_upload_after_approval_is_409(self, client, tenant_a, product):
        sale = _online_sale(client, tenant_a, product)
        client.post(f"/api/sales/{sale['id']}/approve", headers=gateway_headers(tenant_a.id))

        resp = client.post(
            f"/api/sales/{sale['id']}/payment-proof",
            data={"file": (io.BytesIO(b"late"), "late.png")},
            content_type="multipart/form-data",
            headers=gateway_headers(tenant_a.id),
        )

        assert resp.status_code == 409

    def test_oversized_upload_is_413(self, app, client, tenant_a, product, monkeypatch):
        monkeypatch.setitem(app.config, "MAX_CONTENT_LENGTH", 1024)
        sale = _online_sale(client, tenant_a, product, method="QR")

        resp = client.post(
            f"/api/sales/{sale['id']}/payment-proof",
            data={"file": (io.BytesIO(b"\x89PNG" + b"0" * 4096), "proof.png")},
            content_type="multipart/form-data",
            headers=gateway_headers(tenant_a.id),
        )

        assert resp.status_code == 413
        assert resp.get_json()["code"] == "UPLOAD_REJECTED"
        fetched = client.get(f"/api/sales/{sale['id']}", headers=gateway_headers(tenant_a.id))
        assert fetched.get_json()["sale"]["payment_proof_ref"] is None

    def test_upload_losing_race_leaves_no_file(self, app, client, tenant_a, product, monkeypatch):
        from tienda.services import sale_lifecycle

        sale = _online_sale(client, tenant_a, product, method="CASH")
        tenant_dir = os.path.join(app.config["ARTIFACT_DIR"], str(tenant_a.id))
        before = set(os.listdir(tenant_dir)) if os.path.isdir(tenant_dir) else set()
        attach = sale_lifecycle.attach_payment_proof

        def approved_meanwhile(storage, tenant_id, sale_id, ref):
            sale_lifecycle.approve(storage, tenant_id, sale_id)
            return attach(storage, tenant_id, sale_id, ref)

        monkeypatch.setattr(sale_lifecycle, "attach_payment_proof", approved_meanwhile)

        resp = client.post(
            f"/api/sales/{sale['id']}/payment-proof",
            data={"file": (io.BytesIO(b"\x89PNG late"), "late.png")},
            content_type="multipart/form-data",
            headers=gateway_headers(tenant_a.id),
        )

        assert resp.status_code == 409
        after = set(os.listdir(tenant_dir)) if os.path.isdir(tenant_dir) else set()
        assert after == before

    def test_cancel_restores_stock_once(self, client, tenant_a, product):
        sale = _online_sale(client, tenant_a, product, quantity=5)
        headers = gateway_headers(tenant_a.id)
        client.post(f"/api/sales/{sale['id']}/approve", headers=headers)
        assert stock_of(product.id) == 5

        first = client.post(f"/api/sales/{sale['id']}/cancel", headers=headers)
        second = client.post(f"/api/sales/{sale['id']}/cancel", headers=headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert stock_of(product.id) == 10

    def test_reject_deliver_invoice_routes(self, client, tenant_a, product):
        headers = gateway_headers(tenant_a.id)
        rejected = _online_sale(client, tenant_a, product)
        paid = _online_sale(client, tenant_a, product)

        assert client.post(f"/api/sales/{rejected['id']}/reject", headers=headers).status_code == 200
        client.post(f"/api/sales/{paid['id']}/approve", headers=headers)
        delivered = client.post(f"/api/sales/{paid['id']}/deliver", headers=headers)
        invoice_1 = client.post(f"/api/sales/{paid['id']}/invoice", headers=headers)
        invoice_2 = client.post(f"/api/sales/{paid['id']}/invoice", headers=headers)

        assert delivered.get_json()["sale"]["fulfillment_status"] == "DELIVERED"
        assert invoice_1.status_code == 200
        assert invoice_1.get_json()["sale"]["fiscal_number"] == invoice_2.get_json()["sale"]["fiscal_number"]

    def test_other_tenants_sale_is_404(self, client, tenant_a, tenant_b, product):
        sale = _online_sale(client, tenant_a, product)

        for path in (f"/api/sales/{sale['id']}", f"/api/sales/{sale['id']}/document"):
            resp = client.get(path, headers=gateway_headers(tenant_b.id))
            assert resp.status_code == 404
        resp = client.post(f"/api/sales/{sale['id']}/approve", headers=gateway_headers(tenant_b.id))
        assert resp.status_code == 404
        assert stock_of(product.id) == 10

    def test_list_filters(self, client, tenant_a, product):
        _online_sale(client, tenant_a, product)
        client.post(
            "/api/sales",
            json={"channel": "PHYSICAL", "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 1}]},
            headers=gateway_headers(tenant_a.id),
        )

        resp = client.get("/api/sales?channel=physical", headers=gateway_headers(tenant_a.id))

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"] == 1
        assert body["sales"][0]["channel"] == "PHYSICAL"

    def test_list_rejects_bad_filter(self, client, tenant_a):
        resp = client.get("/api/sales?status=SHIPPED", headers=gateway_headers(tenant_a.id))
        assert resp.status_code == 400

    def test_document_download(self, client, tenant_a, product):
        sale = _online_sale(client, tenant_a, product)
        headers = gateway_headers(tenant_a.id)

        inline = client.get(f"/api/sales/{sale['id']}/document", headers=headers)
        download = client.get(f"/api/sales/{sale['id']}/document?download=1", headers=headers)

        assert inline.status_code == 200
        assert inline.mimetype == "application/pdf"
        assert inline.data.startswith(b"%PDF")
        assert "attachment" in download.headers["Content-Disposition"]
        assert f"receipt-{sale['document_number']}.pdf" in download.headers["Content-Disposition"]

    def test_unexpected_failure_is_500(self, client, tenant_a, product, monkeypatch):
        from tienda.services import sale_lifecycle

        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(sale_lifecycle, "list_sales", boom)

        resp = client.get("/api/sales", headers=gateway_headers(tenant_a.id))

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}


# =============================================================================
# PURCHASES
# =============================================================================


class TestPurchasesApi:

    def test_owner_registers_purchase(self, client, tenant_a, product, supplier):
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "payment_method": "CASH",
                "invoice_number": "FAC-12",
                "lines": [
                    {"product_id": product.id, "quantity": 6, "unit_cost_cents": 900, "expiry_date": "2027-03-01"}
                ],
            },
            headers=gateway_headers(tenant_a.id, role="OWNER"),
        )

        assert resp.status_code == 201
        purchase = resp.get_json()["purchase"]
        assert purchase["total_cents"] == 5400
        assert purchase["lines"][0]["expiry_date"] == "2027-03-01"
        assert stock_of(product.id) == 16

        fetched = client.get(f"/api/purchases/{purchase['id']}", headers=gateway_headers(tenant_a.id, role="OWNER"))
        assert fetched.status_code == 200

    def test_qr_purchase_without_proof_is_422(self, client, tenant_a, product):
        resp = client.post(
            "/api/purchases",
            json={"payment_method": "QR", "lines": [{"product_id": product.id, "quantity": 6, "unit_cost_cents": 900}]},
            headers=gateway_headers(tenant_a.id, role="OWNER"),
        )

        assert resp.status_code == 422
        assert stock_of(product.id) == 10

    def test_bad_expiry_date_is_400(self, client, tenant_a, product):
        resp = client.post(
            "/api/purchases",
            json={
                "payment_method": "CASH",
                "lines": [{"product_id": product.id, "quantity": 1, "unit_cost_cents": 1, "expiry_date": "31/12/2027"}],
            },
            headers=gateway_headers(tenant_a.id, role="OWNER"),
        )

        assert resp.status_code == 400

    def test_purchase_list_and_voucher(self, client, tenant_a, product):
        headers = gateway_headers(tenant_a.id, role="OWNER")
        created = client.post(
            "/api/purchases",
            json={"payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 2, "unit_cost_cents": 300}]},
            headers=headers,
        ).get_json()["purchase"]

        listing = client.get("/api/purchases", headers=headers)
        voucher = client.get(f"/api/purchases/{created['id']}/document", headers=headers)

        assert listing.get_json()["count"] == 1
        assert voucher.status_code == 200
        assert voucher.mimetype == "application/pdf"


# =============================================================================
# SYSTEM / CLI
# =============================================================================


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["timestamp"].endswith("Z")

    def test_seed_demo_and_low_stock(self, app, db_session):
        runner = app.test_cli_runner()

        seeded = runner.invoke(args=["tenants", "seed-demo", "--name", "CLI Shop"])
        assert seeded.exit_code == 0
        assert "PASS Created tenant: CLI Shop" in seeded.output

        tenant_id = int(seeded.output.split("(ID: ")[1].split(")")[0])
        report = runner.invoke(args=["tenants", "low-stock", str(tenant_id)])

        assert report.exit_code == 0
        assert "Brown sugar 1kg" in report.output
        assert "DEPLETED" in report.output
        assert "Whole milk 1L" not in report.output

    def test_low_stock_unknown_tenant(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["tenants", "low-stock", "999999"])
        assert "FAIL Tenant ID 999999 not found" in result.output
