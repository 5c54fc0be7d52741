from .machines import Machine
from .catalog import Product, InventoryItem
from .sales import Sale, SaleItem
from .auth import User
from .communications import Notification

__all__ = [
    'Machine',
    'Product', 'InventoryItem',
    'Sale', 'SaleItem',
    'User',
    'Notification',
]
