from .user import User, Address, UserRole
from .catalog import Category, Product, Topping
from .order import Order, OrderItem, OrderStatus, PaymentStatus, DeliveryMethod
from .notification import Notification

__all__ = [
    "User",
    "Address",
    "UserRole",
    "Category",
    "Product",
    "Topping",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "DeliveryMethod",
    "Notification",
]
