from .shops import Shop
from .customers import Customer
from .auth import User, SessionToken
from .inventory import Product, Supplier, InventoryRecord, StockMovement
from .sales import Sale, SaleItem
from .purchases import Purchase, PurchaseItem
from .documents import DocumentSequence

__all__ = [
    'Shop', 'Customer',
    'User', 'SessionToken',
    'Product', 'Supplier', 'InventoryRecord', 'StockMovement',
    'Sale', 'SaleItem',
    'Purchase', 'PurchaseItem',
    'DocumentSequence',
]
