# Overview: PDF rendering of sale receipts/invoices and purchase vouchers with reportlab.

"""
Pure rendering: a resolved view (sale or purchase, tenant, counterparty) in,
PDF bytes out. No database access and no caching; callers rebuild the view
from persisted state on every download.

Layout matrix for sales:

                  fiscal NONE                 fiscal ISSUED
    PHYSICAL      80 mm ticket, receipt       80 mm ticket, invoice
    ONLINE        A4, receipt                 A4, invoice

Canvases are created with invariant=1 so the same view always yields the same
bytes, and with page compression off so content streams stay inspectable.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from ..domain import (
    CHANNEL_PHYSICAL,
    FISCAL_ISSUED,
    METHOD_CASH,
    CustomerRecord,
    PurchaseRecord,
    SaleRecord,
    SupplierRecord,
    TenantDisplay,
)

TICKET_WIDTH = 80 * mm
A4_WIDTH, A4_HEIGHT = A4

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

LAYOUT_TICKET = "ticket"
LAYOUT_A4 = "a4"

TITLE_INVOICE = "INVOICE"
TITLE_RECEIPT = "SALES RECEIPT"
TITLE_PURCHASE = "PURCHASE VOUCHER"

FOOTER_NO_TAX_CREDIT = "Not valid for tax credit"
FOOTER_THANKS = "Thank you for your purchase!"
LEGAL_FOOTER = (
    "This invoice was issued under the fiscal authorization shown above. "
    "Tampering with or reusing it is an offence under tax law."
)

METHOD_LABELS = {
    "CASH": "Cash",
    "QR": "QR payment",
    "TRANSFER": "Bank transfer",
}


@dataclass(frozen=True)
class SaleDocumentView:
    sale: SaleRecord
    tenant: TenantDisplay
    customer: CustomerRecord | None = None


@dataclass(frozen=True)
class PurchaseDocumentView:
    purchase: PurchaseRecord
    tenant: TenantDisplay
    supplier: SupplierRecord | None = None


# =============================================================================
# FORMATTING
# =============================================================================

def format_cents(cents: int) -> str:
    """Two decimals, '.' separator, no grouping, independent of locale: 123450 -> '1234.50'."""
    sign = "-" if cents < 0 else ""
    cents = abs(int(cents))
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def format_rate(bps: int) -> str:
    return f"{bps // 100}.{bps % 100:02d}"


def included_tax_cents(total_cents: int, tax_rate_bps: int) -> int:
    """Tax contained in a tax-inclusive total, rounded half up."""
    if tax_rate_bps <= 0:
        return 0
    divisor = 10000 + tax_rate_bps
    return (total_cents * tax_rate_bps + divisor // 2) // divisor


def format_timestamp(dt: datetime | None) -> str:
    if dt is None:
        return "-"
    return dt.strftime("%Y-%m-%d %H:%M") + " UTC"


def layout_for(sale: SaleRecord) -> str:
    return LAYOUT_TICKET if sale.channel == CHANNEL_PHYSICAL else LAYOUT_A4


def title_for(sale: SaleRecord) -> str:
    return TITLE_INVOICE if sale.fiscal_status == FISCAL_ISSUED else TITLE_RECEIPT


# =============================================================================
# CANVAS
# =============================================================================

class _Sheet:
    """Cursor-based writer over a single reportlab canvas."""

    def __init__(self, width: float, height: float, margin: float, title: str):
        self.buffer = io.BytesIO()
        self.c = canvas.Canvas(
            self.buffer,
            pagesize=(width, height),
            invariant=1,
            pageCompression=0,
        )
        self.c.setTitle(title)
        self.c.setCreator("tienda")
        self.width = width
        self.height = height
        self.margin = margin
        self.y = height - margin

    @property
    def content_width(self) -> float:
        return self.width - 2 * self.margin

    def ensure_room(self, needed: float) -> None:
        if self.y - needed < self.margin:
            self.c.showPage()
            self.y = self.height - self.margin

    def fit(self, text: str, font: str, size: float, max_width: float) -> str:
        while self.c.stringWidth(text, font, size) > max_width and len(text) > 3:
            text = text[:-4] + "..."
        return text

    def draw(self, text: str, x: float, *, size: float = 8, bold: bool = False, align: str = "left") -> None:
        font = FONT_BOLD if bold else FONT
        self.c.setFont(font, size)
        if align == "center":
            self.c.drawCentredString(x, self.y, text)
        elif align == "right":
            self.c.drawRightString(x, self.y, text)
        else:
            self.c.drawString(x, self.y, text)

    def line(self, text: str, *, size: float = 8, bold: bool = False, align: str = "left", leading: float | None = None) -> None:
        leading = leading or size + 3
        self.ensure_room(leading)
        font = FONT_BOLD if bold else FONT
        text = self.fit(text, font, size, self.content_width)
        if align == "center":
            x = self.width / 2
        elif align == "right":
            x = self.width - self.margin
        else:
            x = self.margin
        self.draw(text, x, size=size, bold=bold, align=align)
        self.y -= leading

    def wrapped(self, text: str, *, size: float = 7, align: str = "left") -> None:
        words = text.split()
        current = ""
        for word in words:
            candidate = f"{current} {word}".strip()
            if self.c.stringWidth(candidate, FONT, size) <= self.content_width:
                current = candidate
            else:
                if current:
                    self.line(current, size=size, align=align)
                current = word
        if current:
            self.line(current, size=size, align=align)

    def pair(self, label: str, value: str, *, size: float = 8, bold: bool = False) -> None:
        leading = size + 3
        self.ensure_room(leading)
        self.draw(label, self.margin, size=size, bold=bold)
        self.draw(value, self.width - self.margin, size=size, bold=bold, align="right")
        self.y -= leading

    def rule(self, gap: float = 5) -> None:
        self.ensure_room(gap * 2)
        self.y -= gap / 2
        self.c.setLineWidth(0.5)
        self.c.line(self.margin, self.y + 3, self.width - self.margin, self.y + 3)
        self.y -= gap / 2

    def boxed(self, rows: list[str], *, size: float = 8, x: float | None = None, width: float | None = None) -> None:
        """Bordered block of text lines (the fiscal box)."""
        x = self.margin if x is None else x
        width = self.content_width if width is None else width
        leading = size + 3
        height = leading * len(rows) + 6
        self.ensure_room(height + 4)
        top = self.y + size
        self.c.setLineWidth(0.8)
        self.c.rect(x, top - height, width, height, stroke=1, fill=0)
        self.y -= 2
        for row in rows:
            self.c.setFont(FONT, size)
            self.c.drawString(x + 4, self.y, self.fit(row, FONT, size, width - 8))
            self.y -= leading
        self.y -= 6

    def finish(self) -> bytes:
        self.c.showPage()
        self.c.save()
        return self.buffer.getvalue()


# =============================================================================
# SALES
# =============================================================================

def _fiscal_rows(view: SaleDocumentView) -> list[str]:
    return [
        f"Tax ID: {view.tenant.fiscal_tax_id or '-'}",
        f"Invoice No.: {view.sale.fiscal_number}",
        f"Authorization: {view.tenant.fiscal_authorization or '-'}",
    ]


def _customer_rows(view: SaleDocumentView) -> list[str]:
    sale = view.sale
    name = sale.billing_name or (view.customer.name if view.customer else None)
    tax_id = sale.billing_tax_id or (view.customer.tax_id if view.customer else None)
    rows = []
    if name:
        rows.append(f"Customer: {name}")
    if tax_id:
        rows.append(f"Customer tax ID: {tax_id}")
    return rows


def _ticket_height(view: SaleDocumentView) -> float:
    sale = view.sale
    height = 230 + 24 * len(sale.lines)
    height += 10 * sum(1 for line in sale.lines if line.discount_cents)
    if sale.fiscal_status == FISCAL_ISSUED:
        height += 150
    if sale.amount_received_cents is not None:
        height += 24
    height += 12 * len(_customer_rows(view))
    return height


def _render_ticket(view: SaleDocumentView) -> bytes:
    sale, tenant = view.sale, view.tenant
    issued = sale.fiscal_status == FISCAL_ISSUED
    sheet = _Sheet(TICKET_WIDTH, _ticket_height(view), 10, f"{title_for(sale)} {sale.document_number}")

    sheet.line(tenant.name, size=10, bold=True, align="center")
    if tenant.address:
        sheet.line(tenant.address, size=7, align="center")
    if tenant.phone:
        sheet.line(f"Tel: {tenant.phone}", size=7, align="center")
    sheet.rule()

    sheet.line(title_for(sale), size=9, bold=True, align="center")
    if issued:
        sheet.boxed(_fiscal_rows(view), size=7)

    sheet.line(f"No. {sale.document_number}", size=7)
    sheet.line(f"Date: {format_timestamp(sale.created_at)}", size=7)
    sheet.line(f"Payment: {METHOD_LABELS.get(sale.payment_method, sale.payment_method)}", size=7)
    for row in _customer_rows(view):
        sheet.line(row, size=7)
    sheet.rule()

    for line in sale.lines:
        sheet.line(line.product_name, size=7)
        sheet.pair(
            f"  {line.quantity} x {format_cents(line.unit_price_cents)}",
            format_cents(line.subtotal_cents),
            size=7,
        )
        if line.discount_cents:
            sheet.pair("  Discount", f"-{format_cents(line.discount_cents)}", size=6)
    sheet.rule()

    if sale.discount_total_cents:
        sheet.pair("Discounts", f"-{format_cents(sale.discount_total_cents)}", size=7)
    sheet.pair(f"TOTAL {tenant.currency}", format_cents(sale.total_cents), size=9, bold=True)
    if issued and tenant.tax_rate_bps:
        sheet.pair(
            f"Included tax ({format_rate(tenant.tax_rate_bps)}%)",
            format_cents(included_tax_cents(sale.total_cents, tenant.tax_rate_bps)),
            size=7,
        )
    if sale.payment_method == METHOD_CASH and sale.amount_received_cents is not None:
        sheet.pair("Received", format_cents(sale.amount_received_cents), size=7)
        sheet.pair("Change", format_cents(sale.change_cents or 0), size=7)
    sheet.rule()

    if issued:
        _qr_placeholder(sheet, sale.fiscal_number, size=48)
        sheet.wrapped(LEGAL_FOOTER, size=6, align="center")
    else:
        sheet.line(FOOTER_NO_TAX_CREDIT, size=7, bold=True, align="center")
    sheet.line(FOOTER_THANKS, size=7, align="center")
    return sheet.finish()


def _qr_placeholder(sheet: _Sheet, fiscal_number: str | None, *, size: float) -> None:
    # Verification code slot; the fiscal authority's QR payload is not generated here
    sheet.ensure_room(size + 14)
    x = (sheet.width - size) / 2
    sheet.c.setLineWidth(0.5)
    sheet.c.rect(x, sheet.y - size, size, size, stroke=1, fill=0)
    sheet.c.setFont(FONT, 6)
    sheet.c.drawCentredString(sheet.width / 2, sheet.y - size / 2, "QR")
    sheet.y -= size + 10
    sheet.line(f"Verify: {fiscal_number}", size=6, align="center")


def _render_a4(view: SaleDocumentView) -> bytes:
    sale, tenant = view.sale, view.tenant
    issued = sale.fiscal_status == FISCAL_ISSUED
    sheet = _Sheet(A4_WIDTH, A4_HEIGHT, 40, f"{title_for(sale)} {sale.document_number}")
    right = sheet.width - sheet.margin

    sheet.draw(tenant.name, sheet.margin, size=16, bold=True)
    sheet.draw(title_for(sale), right, size=16, bold=True, align="right")
    sheet.y -= 20
    if tenant.address:
        sheet.line(tenant.address, size=9)
    if tenant.phone:
        sheet.line(f"Tel: {tenant.phone}", size=9)
    sheet.y -= 6

    if issued:
        sheet.boxed(_fiscal_rows(view), size=9, x=right - 220, width=220)

    sheet.pair(f"No. {sale.document_number}", f"Date: {format_timestamp(sale.created_at)}", size=9)
    sheet.line(f"Payment: {METHOD_LABELS.get(sale.payment_method, sale.payment_method)}", size=9)
    for row in _customer_rows(view):
        sheet.line(row, size=9)
    sheet.rule(10)

    columns = (
        (sheet.margin, "#", "left"),
        (sheet.margin + 24, "Product", "left"),
        (right - 230, "Qty", "right"),
        (right - 160, "Unit price", "right"),
        (right - 80, "Discount", "right"),
        (right, "Subtotal", "right"),
    )
    for x, label, align in columns:
        sheet.draw(label, x, size=9, bold=True, align=align)
    sheet.y -= 14

    for line in sale.lines:
        sheet.ensure_room(14)
        values = (
            str(line.position),
            sheet.fit(line.product_name, FONT, 9, right - 260 - (sheet.margin + 24)),
            str(line.quantity),
            format_cents(line.unit_price_cents),
            format_cents(line.discount_cents),
            format_cents(line.subtotal_cents),
        )
        for (x, _, align), value in zip(columns, values):
            sheet.draw(value, x, size=9, align=align)
        sheet.y -= 14
    sheet.rule(10)

    if sale.discount_total_cents:
        sheet.pair("Discounts", f"-{format_cents(sale.discount_total_cents)}", size=9)
    sheet.pair(f"TOTAL {tenant.currency}", format_cents(sale.total_cents), size=12, bold=True)
    if issued and tenant.tax_rate_bps:
        sheet.pair(
            f"Included tax ({format_rate(tenant.tax_rate_bps)}%)",
            format_cents(included_tax_cents(sale.total_cents, tenant.tax_rate_bps)),
            size=9,
        )
    sheet.y -= 16

    if issued:
        _qr_placeholder(sheet, sale.fiscal_number, size=72)
        sheet.wrapped(LEGAL_FOOTER, size=8, align="center")
    sheet.line(FOOTER_THANKS, size=9, align="center")
    return sheet.finish()


def render_sale(view: SaleDocumentView) -> bytes:
    """Render a sale as a ticket (PHYSICAL) or A4 page (ONLINE)."""
    if layout_for(view.sale) == LAYOUT_TICKET:
        return _render_ticket(view)
    return _render_a4(view)


# =============================================================================
# PURCHASES
# =============================================================================

def render_purchase(view: PurchaseDocumentView) -> bytes:
    purchase, tenant = view.purchase, view.tenant
    sheet = _Sheet(A4_WIDTH, A4_HEIGHT, 40, f"{TITLE_PURCHASE} {purchase.document_number}")
    right = sheet.width - sheet.margin

    sheet.draw(tenant.name, sheet.margin, size=16, bold=True)
    sheet.draw(TITLE_PURCHASE, right, size=16, bold=True, align="right")
    sheet.y -= 26

    sheet.pair(f"No. {purchase.document_number}", f"Date: {format_timestamp(purchase.created_at)}", size=9)
    supplier = view.supplier.name if view.supplier else "Own stock"
    sheet.line(f"Supplier: {supplier}", size=9)
    sheet.line(f"Payment: {METHOD_LABELS.get(purchase.payment_method, purchase.payment_method)}", size=9)
    if purchase.invoice_number:
        sheet.line(f"Supplier invoice: {purchase.invoice_number}", size=9)
    if purchase.observation:
        sheet.wrapped(f"Notes: {purchase.observation}", size=9)
    sheet.rule(10)

    columns = (
        (sheet.margin, "Product", "left"),
        (right - 280, "Lot", "left"),
        (right - 200, "Expiry", "left"),
        (right - 140, "Qty", "right"),
        (right - 70, "Unit cost", "right"),
        (right, "Subtotal", "right"),
    )
    for x, label, align in columns:
        sheet.draw(label, x, size=9, bold=True, align=align)
    sheet.y -= 14

    for line in purchase.lines:
        sheet.ensure_room(14)
        values = (
            sheet.fit(line.product_name, FONT, 9, right - 290 - sheet.margin),
            line.lot_number or "-",
            line.expiry_date.isoformat() if line.expiry_date else "-",
            str(line.quantity),
            format_cents(line.unit_cost_cents),
            format_cents(line.subtotal_cents),
        )
        for (x, _, align), value in zip(columns, values):
            sheet.draw(value, x, size=9, align=align)
        sheet.y -= 14
    sheet.rule(10)

    sheet.pair(f"TOTAL {tenant.currency}", format_cents(purchase.total_cents), size=12, bold=True)
    return sheet.finish()
