# Import models so that SQLAlchemy metadata includes them on app startup
from .product import Product, ProductVariant  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .payment import Payment  # noqa: F401
