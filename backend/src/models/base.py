"""Base SQLAlchemy declarative base and shared column helpers for all models"""

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base
from sqlalchemy import TypeDecorator, JSON
from sqlalchemy.dialects.postgresql import JSONB


class PortableJSONB(TypeDecorator):
    """JSON type that works with both PostgreSQL (JSONB) and SQLite (JSON).

    Integration settings, addresses and line items are stored as JSONB on
    PostgreSQL and plain JSON on SQLite for testing.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


def utc_now() -> datetime:
    """Timezone-aware now, used for column defaults."""
    return datetime.now(timezone.utc)


Base = declarative_base()
