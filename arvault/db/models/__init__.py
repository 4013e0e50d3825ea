from arvault.db.models.asset import Asset
from arvault.db.models.share import Share
from arvault.db.models.user import User

__all__ = ["Asset", "Share", "User"]
