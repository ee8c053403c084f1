"""Pytest fixtures for the sync engine.

Provides reusable test fixtures for:
- In-memory SQLite database with all tables
- Session factory handed to repositories, tasks and tenant transactions
- Credential vault with a fixed test key
- Seeded integrations, shipments and listings

Usage:
    def test_poller(session_factory, vault, make_integration):
        integration = make_integration("allegro", {"client_id": "x"})
"""

import sys
import os
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
os.environ.setdefault("LOG_JSON", "false")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from uuid import uuid4

from infrastructure.encryption import CredentialVault
from infrastructure.repositories import IntegrationAdminRepository
from models import Base, Integration, IntegrationKind, ProductListing, Shipment


@pytest.fixture
def engine():
    """Fresh in-memory database per test, shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Plain session for arranging and asserting rows."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def vault():
    return CredentialVault(bytes.fromhex(TEST_ENCRYPTION_KEY))


@pytest.fixture
def admin_repo(session_factory):
    return IntegrationAdminRepository(session_factory)


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def make_integration(session_factory, vault, tenant_id):
    """Factory inserting an integration with encrypted credentials.

    Pass credentials=None to store no credential blob, or encrypted=... to
    store a raw (possibly broken) blob.
    """

    def _make(
        provider,
        credentials=None,
        settings=None,
        kind=IntegrationKind.MARKETPLACE,
        status="active",
        sync_cursor=None,
        encrypted=None,
        tenant=None,
    ):
        if encrypted is None and credentials is not None:
            encrypted = vault.encrypt_json(credentials)
        session = session_factory()
        try:
            integration = Integration(
                id=uuid4(),
                tenant_id=tenant or tenant_id,
                provider=provider,
                kind=kind,
                status=status,
                credentials=encrypted,
                settings=settings or {},
                sync_cursor=sync_cursor,
            )
            session.add(integration)
            session.commit()
            session.refresh(integration)
            session.expunge(integration)
            return integration
        finally:
            session.close()

    return _make


@pytest.fixture
def make_shipment(session_factory, tenant_id):
    """Factory inserting a shipment row."""

    def _make(provider, tracking_number="TRACK1", status="created", integration_id=None, tenant=None):
        session = session_factory()
        try:
            shipment = Shipment(
                id=uuid4(),
                tenant_id=tenant or tenant_id,
                provider=provider,
                integration_id=integration_id,
                tracking_number=tracking_number,
                status=status,
            )
            session.add(shipment)
            session.commit()
            session.refresh(shipment)
            session.expunge(shipment)
            return shipment
        finally:
            session.close()

    return _make


@pytest.fixture
def make_listing(session_factory, tenant_id):
    """Factory inserting a product listing row."""

    def _make(integration_id, external_id="OFFER-1", stock_quantity=5, status="active", tenant=None):
        session = session_factory()
        try:
            listing = ProductListing(
                id=uuid4(),
                tenant_id=tenant or tenant_id,
                integration_id=integration_id,
                external_id=external_id,
                stock_quantity=stock_quantity,
                status=status,
            )
            session.add(listing)
            session.commit()
            session.refresh(listing)
            session.expunge(listing)
            return listing
        finally:
            session.close()

    return _make
