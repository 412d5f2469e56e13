from app.db.models.item import Item
from app.db.models.user import User

__all__ = ["User", "Item"]
