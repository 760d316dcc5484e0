"""SQLAlchemy ORM models for the mod signer dashboard."""

from backend.models.audit import AuditAction, AuditLog
from backend.models.base import Base
from backend.models.mod import Mod, ModStatus, ModVersion
from backend.models.user import User, UserRole

__all__ = [
    "AuditAction",
    "AuditLog",
    "Base",
    "Mod",
    "ModStatus",
    "ModVersion",
    "User",
    "UserRole",
]
