# Overview: Per-tenant document and fiscal number allocation.

from __future__ import annotations

from ..errors import DomainError

DOC_SALE = "SALE"
DOC_PURCHASE = "PURCHASE"
DOC_INVOICE = "INVOICE"

PREFIXES = {
    DOC_SALE: "V",
    DOC_PURCHASE: "C",
    DOC_INVOICE: "F",
}


class DocumentSequenceError(DomainError):
    """Raised when a number is requested for no tenant or an unknown document type."""

    code = "DOCUMENT_SEQUENCE_ERROR"
    http_status = 400


def next_document_number(sequences, *, tenant_id: int, document_type: str, pad: int = 6) -> str:
    """
    Allocate the next number for a tenant/type, e.g. "V-001-000042".

    Runs in the caller's transaction: a rolled-back operation releases
    nothing, so a number is only consumed by a committed document.
    """
    if not tenant_id:
        raise DocumentSequenceError("tenant_id is required")
    if document_type not in PREFIXES:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")

    n = sequences.allocate(tenant_id, document_type)
    return f"{PREFIXES[document_type]}-{tenant_id:03d}-{n:0{pad}d}"


def next_sale_number(sequences, tenant_id: int) -> str:
    return next_document_number(sequences, tenant_id=tenant_id, document_type=DOC_SALE)


def next_purchase_number(sequences, tenant_id: int) -> str:
    return next_document_number(sequences, tenant_id=tenant_id, document_type=DOC_PURCHASE)


def next_fiscal_number(sequences, tenant_id: int) -> str:
    """Opaque invoice number; the only contract is uniqueness per tenant."""
    return next_document_number(sequences, tenant_id=tenant_id, document_type=DOC_INVOICE)
