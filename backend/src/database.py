"""Database session factory and configuration.

Provides database connectivity and session management for the sync engine.

Two access paths exist and are kept apart on purpose:
- tenant_transaction(): business-data writes (orders, shipments, listings)
  run with the tenant context set on the transaction.
- infrastructure.repositories.IntegrationAdminRepository: cross-tenant
  bookkeeping reads/writes (integration rows, cursors, credentials).
"""

from contextlib import contextmanager
from typing import Callable, Generator, Optional
from uuid import UUID

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session

from config import get_settings

SessionFactory = Callable[[], Session]

DATABASE_URL = get_settings().DATABASE_URL

# Create engine with connection pooling
# Pool settings only apply to PostgreSQL (not SQLite)
_engine_kwargs = {
    "pool_pre_ping": True,  # Verify connections before using
    "echo": False,
}

if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["pool_size"] = 5
    _engine_kwargs["max_overflow"] = 10

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def _is_postgres(session: Session) -> bool:
    return session.get_bind().dialect.name == "postgresql"


@contextmanager
def get_db_session(session_factory: Optional[SessionFactory] = None) -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.query(Integration).all()

    Automatically commits on success, rolls back on exception.
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def tenant_transaction(
    tenant_id: UUID,
    session_factory: Optional[SessionFactory] = None,
) -> Generator[Session, None, None]:
    """Open a transaction scoped to a single tenant.

    The tenant id is stored in session.info["tenant_id"] (used by the
    before_flush listener below) and, on PostgreSQL, published to row-level
    security policies through the transaction-local setting
    app.current_tenant_id.

    Args:
        tenant_id: Tenant owning every row written in this transaction
        session_factory: Optional session factory (defaults to SessionLocal)

    Example:
        with tenant_transaction(integration.tenant_id) as session:
            session.add(order)
    """
    session = (session_factory or SessionLocal)()
    session.info["tenant_id"] = tenant_id
    try:
        if _is_postgres(session):
            session.execute(
                text("SELECT set_config('app.current_tenant_id', :tenant_id, true)"),
                {"tenant_id": str(tenant_id)},
            )
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def advisory_lock(name: str, session_factory: Optional[SessionFactory] = None) -> Generator[bool, None, None]:
    """Try to take a session-level PostgreSQL advisory lock.

    Yields True when the lock is held (always True on non-PostgreSQL
    databases), False when another instance holds it.
    """
    session = (session_factory or SessionLocal)()
    acquired = True
    try:
        if _is_postgres(session):
            acquired = bool(session.execute(
                text("SELECT pg_try_advisory_lock(hashtext(:name))"), {"name": name}
            ).scalar())
        yield acquired
    finally:
        try:
            if acquired and _is_postgres(session):
                session.execute(text("SELECT pg_advisory_unlock(hashtext(:name))"), {"name": name})
        finally:
            session.close()


@event.listens_for(Session, "before_flush")
def auto_populate_tenant_id(session, flush_context, instances):
    """Automatically populate tenant_id on INSERT for new records.

    Only applies inside tenant_transaction() and only to models that carry
    a tenant_id attribute which has not been set explicitly.
    """
    tenant_id = session.info.get("tenant_id")
    if not tenant_id:
        return

    for instance in session.new:
        if hasattr(instance, "tenant_id") and instance.tenant_id is None:
            instance.tenant_id = tenant_id
