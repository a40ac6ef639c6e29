from app.models.users import User
from app.models.restaurants import MenuItem, Restaurant
from app.models.reviews import Review, ReviewReport
from app.models.favorites import Favorite
from app.models.security import AdminAuditEntry, LoginAttempt, RevokedToken

__all__ = [
    "User",
    "Restaurant",
    "MenuItem",
    "Review",
    "ReviewReport",
    "Favorite",
    "LoginAttempt",
    "RevokedToken",
    "AdminAuditEntry",
]
