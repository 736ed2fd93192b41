# Import all models to register them with SQLModel
from app.models.profile import Profile, ProfileRole
from app.models.product import Product, Pack
from app.models.consultant import Consultant
from app.models.cart import Cart, CartLine
from app.models.reservation import Reservation, ReservationItem, ReservationStatus, ContactMethod
from app.models.notification import Notification, NotificationType, NotificationKind

__all__ = [
    "Profile",
    "ProfileRole",
    "Product",
    "Pack",
    "Consultant",
    "Cart",
    "CartLine",
    "Reservation",
    "ReservationItem",
    "ReservationStatus",
    "ContactMethod",
    "Notification",
    "NotificationType",
    "NotificationKind",
]
