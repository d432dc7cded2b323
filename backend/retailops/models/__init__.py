from .tenancy import Business, Outlet, Warehouse, Customer, Supplier
from .catalog import Product, PriceTier, ProductPriceTier
from .inventory import Inventory, StockMovement
from .sales import PosOrder, PosOrderItem, Payment
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .documents import DocumentSequence

__all__ = [
    'Business', 'Outlet', 'Warehouse', 'Customer', 'Supplier',
    'Product', 'PriceTier', 'ProductPriceTier',
    'Inventory', 'StockMovement',
    'PosOrder', 'PosOrderItem', 'Payment',
    'PurchaseOrder', 'PurchaseOrderItem',
    'DocumentSequence',
]
