"""
Document Rendering Tests

PDFs are written uncompressed, so labels and amounts can be matched directly
in the content streams.
"""

import re

import pytest

from tienda.domain import CheckoutCommand, PurchaseCommand, PurchaseLineInput, SaleLineInput
from tienda.errors import NotFound
from tienda.services import document_renderer, document_service, purchase_lifecycle, sale_lifecycle
from tienda.services.document_renderer import (
    A4_HEIGHT,
    A4_WIDTH,
    TICKET_WIDTH,
    format_cents,
    included_tax_cents,
)

from conftest import make_product

MEDIA_BOX = re.compile(rb"/MediaBox\s*\[\s*0 0 ([\d.]+) ([\d.]+)\s*\]")


def page_size(pdf: bytes) -> tuple[float, float]:
    match = MEDIA_BOX.search(pdf)
    assert match, "no MediaBox in document"
    return float(match.group(1)), float(match.group(2))


def _sale(storage, tenant, product, channel, **kwargs):
    command = CheckoutCommand(
        channel=channel,
        payment_method="CASH",
        lines=(SaleLineInput(product_id=product.id, quantity=1),),
        **kwargs,
    )
    sale = sale_lifecycle.checkout(storage, tenant.id, command)
    if channel == "ONLINE":
        sale = sale_lifecycle.approve(storage, tenant.id, sale.id)
    return sale


class TestFormatting:

    @pytest.mark.parametrize("cents,expected", [
        (0, "0.00"),
        (5, "0.05"),
        (1250, "12.50"),
        (123450, "1234.50"),
        (-300, "-3.00"),
    ])
    def test_format_cents(self, cents, expected):
        assert format_cents(cents) == expected

    def test_included_tax_rounds_half_up(self):
        assert included_tax_cents(1250, 1300) == 144
        assert included_tax_cents(11300, 1300) == 1300
        assert included_tax_cents(1000, 0) == 0


class TestSaleDocuments:

    def test_physical_receipt_is_a_ticket(self, storage, tenant_a, product):
        sale = _sale(storage, tenant_a, product, "PHYSICAL")

        pdf, filename = document_service.render_sale_document(storage, tenant_a.id, sale.id)

        assert pdf.startswith(b"%PDF")
        assert filename == f"receipt-{sale.document_number}.pdf"
        width, _ = page_size(pdf)
        assert width == pytest.approx(TICKET_WIDTH, abs=0.01)
        assert b"SALES RECEIPT" in pdf
        assert b"Not valid for tax credit" in pdf
        assert b"INVOICE" not in pdf
        assert b"12.50" in pdf

    def test_online_receipt_is_a4(self, storage, tenant_a, product):
        sale = _sale(storage, tenant_a, product, "ONLINE")

        pdf, _ = document_service.render_sale_document(storage, tenant_a.id, sale.id)

        width, height = page_size(pdf)
        assert width == pytest.approx(A4_WIDTH, abs=0.01)
        assert height == pytest.approx(A4_HEIGHT, abs=0.01)
        assert b"SALES RECEIPT" in pdf

    @pytest.mark.parametrize("channel,expected_width", [("PHYSICAL", TICKET_WIDTH), ("ONLINE", A4_WIDTH)])
    def test_invoice_carries_fiscal_data(self, storage, tenant_a, product, channel, expected_width):
        sale = _sale(storage, tenant_a, product, channel)
        invoiced = sale_lifecycle.issue_invoice(storage, tenant_a.id, sale.id)

        pdf, filename = document_service.render_sale_document(storage, tenant_a.id, sale.id)

        assert filename == f"invoice-{sale.document_number}.pdf"
        assert page_size(pdf)[0] == pytest.approx(expected_width, abs=0.01)
        assert b"INVOICE" in pdf
        assert invoiced.fiscal_number.encode() in pdf
        assert b"AUTH-A-001" in pdf
        assert b"1000001" in pdf
        assert b"Included tax" in pdf
        assert b"13.00%" in pdf
        assert b"1.44" in pdf
        assert b"Not valid for tax credit" not in pdf

    def test_issued_invoice_renders_identically(self, storage, tenant_a, product):
        sale = _sale(storage, tenant_a, product, "PHYSICAL")
        sale_lifecycle.issue_invoice(storage, tenant_a.id, sale.id)

        first, _ = document_service.render_sale_document(storage, tenant_a.id, sale.id)
        second, _ = document_service.render_sale_document(storage, tenant_a.id, sale.id)

        assert first == second

    def test_tenant_edits_show_up_on_next_render(self, storage, db_session, tenant_a, product):
        sale = _sale(storage, tenant_a, product, "PHYSICAL")
        before, _ = document_service.render_sale_document(storage, tenant_a.id, sale.id)

        tenant_a.name = "Tienda A Renamed"
        db_session.commit()
        after, _ = document_service.render_sale_document(storage, tenant_a.id, sale.id)

        assert b"Tienda A Renamed" not in before
        assert b"Tienda A Renamed" in after

    def test_cash_ticket_prints_change(self, storage, tenant_a, product):
        sale = _sale(storage, tenant_a, product, "PHYSICAL", amount_received_cents=2000)

        pdf, _ = document_service.render_sale_document(storage, tenant_a.id, sale.id)

        assert b"Change" in pdf
        assert b"7.50" in pdf

    def test_customer_printed_when_linked(self, storage, tenant_a, product, customer):
        sale = _sale(storage, tenant_a, product, "ONLINE", customer_id=customer.id)

        pdf, _ = document_service.render_sale_document(storage, tenant_a.id, sale.id)

        assert b"Ana Flores" in pdf
        assert b"7654321" in pdf

    def test_other_tenant_cannot_render(self, storage, tenant_a, tenant_b, product):
        sale = _sale(storage, tenant_a, product, "PHYSICAL")

        with pytest.raises(NotFound):
            document_service.render_sale_document(storage, tenant_b.id, sale.id)

    def test_long_ticket_stays_on_one_page(self, storage, db_session, tenant_a):
        products = [make_product(db_session, tenant_a, name=f"Item {i}", stock=5) for i in range(30)]
        command = CheckoutCommand(
            channel="PHYSICAL",
            payment_method="CASH",
            lines=tuple(SaleLineInput(product_id=p.id, quantity=1) for p in products),
        )
        sale = sale_lifecycle.checkout(storage, tenant_a.id, command)

        view = document_service.build_sale_view(storage, tenant_a.id, sale.id)
        pdf = document_renderer.render_sale(view)

        assert re.search(rb"/Count (\d+)", pdf).group(1) == b"1"


class TestPurchaseDocuments:

    def test_purchase_voucher(self, storage, tenant_a, product, supplier):
        command = PurchaseCommand(
            payment_method="CASH",
            supplier_id=supplier.id,
            lines=(PurchaseLineInput(product_id=product.id, quantity=24, unit_cost_cents=700, lot_number="L-77"),),
        )
        purchase = purchase_lifecycle.create_purchase(storage, tenant_a.id, command)

        pdf, filename = document_service.render_purchase_document(storage, tenant_a.id, purchase.id)

        assert filename == f"purchase-{purchase.document_number}.pdf"
        assert page_size(pdf)[0] == pytest.approx(A4_WIDTH, abs=0.01)
        assert b"PURCHASE VOUCHER" in pdf
        assert b"Distribuidora Central" in pdf
        assert b"L-77" in pdf
        assert b"168.00" in pdf

    def test_voucher_without_supplier(self, storage, tenant_a, product):
        command = PurchaseCommand(
            payment_method="CASH",
            lines=(PurchaseLineInput(product_id=product.id, quantity=1, unit_cost_cents=100),),
        )
        purchase = purchase_lifecycle.create_purchase(storage, tenant_a.id, command)

        pdf, _ = document_service.render_purchase_document(storage, tenant_a.id, purchase.id)

        assert b"Supplier: Own stock" in pdf
