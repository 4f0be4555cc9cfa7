from partnerhub.db.base import Base, IDMixin, TimestampMixin, new_id, utcnow
from partnerhub.db.session import SessionLocal, engine, get_db

__all__ = [
    "Base",
    "IDMixin",
    "TimestampMixin",
    "new_id",
    "utcnow",
    "engine",
    "SessionLocal",
    "get_db",
]
