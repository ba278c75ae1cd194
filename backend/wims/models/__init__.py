from .catalog import Product, Batch, StockAdjustment, PRODUCT_UNITS
from .parties import Customer, Supplier
from .orders import (
    Order,
    OrderLine,
    OrderSequence,
    ORDER_STATUSES,
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_DELIVERED,
    STATUS_CANCELLED,
)
from .auth import User, SessionToken, USER_ROLES, ROLE_ADMIN, ROLE_MANAGER, ROLE_CLERK
from .notifications import Notification

__all__ = [
    'Product', 'Batch', 'StockAdjustment', 'PRODUCT_UNITS',
    'Customer', 'Supplier',
    'Order', 'OrderLine', 'OrderSequence',
    'ORDER_STATUSES', 'STATUS_PENDING', 'STATUS_CONFIRMED', 'STATUS_DELIVERED', 'STATUS_CANCELLED',
    'User', 'SessionToken', 'USER_ROLES', 'ROLE_ADMIN', 'ROLE_MANAGER', 'ROLE_CLERK',
    'Notification',
]
