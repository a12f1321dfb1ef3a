"""
SQLAlchemy ORM Models Package.

- base: Base class, TimestampMixin, BigIntPK
- branch: Branch, DiningTable
- catalog: MenuItem, Modifier
- order: Order, OrderItem, OrderItemModifier, OrderSequence
- billing: Payment
- inventory: StockItem, StockMovement, Recipe
- audit: AuditLog
"""

from .base import Base, BigIntPK, TimestampMixin
from .branch import Branch, DiningTable
from .catalog import MenuItem, Modifier
from .order import Order, OrderItem, OrderItemModifier, OrderSequence
from .billing import Payment
from .inventory import StockItem, StockMovement, Recipe
from .audit import AuditLog

__all__ = [
    "Base",
    "BigIntPK",
    "TimestampMixin",
    "Branch",
    "DiningTable",
    "MenuItem",
    "Modifier",
    "Order",
    "OrderItem",
    "OrderItemModifier",
    "OrderSequence",
    "Payment",
    "StockItem",
    "StockMovement",
    "Recipe",
    "AuditLog",
]
