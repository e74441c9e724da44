from .directory import Branch, UserProfile, Customer
from .orders import Order, OrderItem, OrderAuditEvent
from .payments import PaymentTransaction

__all__ = [
    'Branch', 'UserProfile', 'Customer',
    'Order', 'OrderItem', 'OrderAuditEvent',
    'PaymentTransaction',
]
