# Import models so that SQLAlchemy metadata includes them on app startup
from .booking import Booking  # noqa: F401
from .cart import Cart, CartItem  # noqa: F401
from .payment import Payment  # noqa: F401
from .payment_event import PaymentEvent  # noqa: F401
