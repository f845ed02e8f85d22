from .tables import Base, Bookings, DownloadLinks, Purchases, Resources, Services, metadata
from .status import ACTIVE_BOOKING_STATUSES, BookingStatus, PaymentStatus, PurchaseStatus

__all__ = [
    "Base",
    "metadata",
    "Services",
    "Resources",
    "Bookings",
    "Purchases",
    "DownloadLinks",
    "BookingStatus",
    "PaymentStatus",
    "PurchaseStatus",
    "ACTIVE_BOOKING_STATUSES",
]
