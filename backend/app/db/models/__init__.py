from app.db.models.activity_log import ActivityLog
from app.db.models.auth_attempt import AuthAttempt
from app.db.models.role import Role
from app.db.models.user import User

__all__ = ["ActivityLog", "AuthAttempt", "Role", "User"]
