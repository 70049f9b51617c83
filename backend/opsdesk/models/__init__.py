from .locations import Location, LOCATION_TYPES
from .profiles import Profile, SessionToken
from .catalog import Product, ProductSize, MEASUREMENT_COLUMNS
from .inventory import InventoryItem
from .orders import Order, OrderItem

__all__ = [
    'Location', 'LOCATION_TYPES',
    'Profile', 'SessionToken',
    'Product', 'ProductSize', 'MEASUREMENT_COLUMNS',
    'InventoryItem',
    'Order', 'OrderItem',
]
