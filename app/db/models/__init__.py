from app.db.models.holiday import Holiday, HolidayType
from app.db.models.reservation import Reservation
from app.db.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "Reservation",
    "Holiday",
    "HolidayType",
]
