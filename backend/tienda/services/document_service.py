# Overview: Resolves persisted sales/purchases into document views and renders them on demand.

from __future__ import annotations

from ..domain import FISCAL_ISSUED
from ..errors import NotFound
from . import document_renderer
from .document_renderer import PurchaseDocumentView, SaleDocumentView
from .purchase_lifecycle import get_purchase
from .sale_lifecycle import get_sale


def _tenant(storage, tenant_id: int):
    tenant = storage.tenants.get_display(tenant_id)
    if tenant is None:
        raise NotFound("Tenant", tenant_id, tenant_id)
    return tenant


def build_sale_view(storage, tenant_id: int, sale_id: int) -> SaleDocumentView:
    sale = get_sale(storage, tenant_id, sale_id)
    customer = None
    if sale.customer_id is not None:
        customer = storage.customers.get(tenant_id, sale.customer_id)
    return SaleDocumentView(sale=sale, tenant=_tenant(storage, tenant_id), customer=customer)


def build_purchase_view(storage, tenant_id: int, purchase_id: int) -> PurchaseDocumentView:
    purchase = get_purchase(storage, tenant_id, purchase_id)
    supplier = None
    if purchase.supplier_id is not None:
        supplier = storage.suppliers.get(tenant_id, purchase.supplier_id)
    return PurchaseDocumentView(purchase=purchase, tenant=_tenant(storage, tenant_id), supplier=supplier)


def render_sale_document(storage, tenant_id: int, sale_id: int) -> tuple[bytes, str]:
    """
    Render the current state of a sale. Returns (pdf_bytes, filename).

    Nothing is cached: tenant display data and fiscal status are read fresh
    on every call.
    """
    view = build_sale_view(storage, tenant_id, sale_id)
    kind = "invoice" if view.sale.fiscal_status == FISCAL_ISSUED else "receipt"
    return document_renderer.render_sale(view), f"{kind}-{view.sale.document_number}.pdf"


def render_purchase_document(storage, tenant_id: int, purchase_id: int) -> tuple[bytes, str]:
    view = build_purchase_view(storage, tenant_id, purchase_id)
    return document_renderer.render_purchase(view), f"purchase-{view.purchase.document_number}.pdf"
