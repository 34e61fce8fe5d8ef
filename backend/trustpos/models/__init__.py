from .catalog import Category, Supplier, Product, SerialItem, StockMovement
from .sales import Order, OrderItem, Payment, Receipt, Return, ReturnItem
from .pricing import Discount, TaxConfig
from .audit import AuditLog
from .auth import User, SessionToken
from .customers import Customer
from .documents import DocumentSequence

__all__ = [
    'Category', 'Supplier', 'Product', 'SerialItem', 'StockMovement',
    'Order', 'OrderItem', 'Payment', 'Receipt', 'Return', 'ReturnItem',
    'Discount', 'TaxConfig',
    'AuditLog',
    'User', 'SessionToken',
    'Customer',
    'DocumentSequence',
]
