from .tenancy import Tenant, DocumentSequence
from .catalog import Product, Supplier, Customer
from .sales import Sale, SaleLine
from .purchases import Purchase, PurchaseLine
from .events import DomainEvent

__all__ = [
    'Tenant', 'DocumentSequence',
    'Product', 'Supplier', 'Customer',
    'Sale', 'SaleLine',
    'Purchase', 'PurchaseLine',
    'DomainEvent',
]
