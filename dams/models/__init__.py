from dams.models.activity import ActivityLog
from dams.models.asset import Asset, ShareGrant
from dams.models.user import Role, User

__all__ = [
    "ActivityLog",
    "Asset",
    "Role",
    "ShareGrant",
    "User",
]
