from models.table_management import Table
from models.menu_management import Category, Product
from models.order_management import Order, OrderItem
from models.reservation import Reservation

# Register all models
__all__ = ['Table', 'Category', 'Product', 'Order', 'OrderItem', 'Reservation']
