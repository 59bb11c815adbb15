from .inventory import Product, StockMovement
from .orders import Order, OrderItem
from .tables import DiningTable, Reservation

__all__ = [
    'Product', 'StockMovement',
    'Order', 'OrderItem',
    'DiningTable', 'Reservation',
]
