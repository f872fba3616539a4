from .catalog import ProductParent, ProductVariant
from .orders import Order, OrderItem, OrderNumberSequence
from .stock import StockMovement, MOVEMENT_TYPES, MANUAL_MOVEMENT_TYPES

__all__ = [
    'ProductParent', 'ProductVariant',
    'Order', 'OrderItem', 'OrderNumberSequence',
    'StockMovement', 'MOVEMENT_TYPES', 'MANUAL_MOVEMENT_TYPES',
]
