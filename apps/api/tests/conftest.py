"""Pytest configuration and fixtures."""

import os

import pytest

from ledgerline_api.ai.llm import Completion
from ledgerline_api.db.base import Base
from ledgerline_api.db.session import Database, tenant_scope
from ledgerline_api.models import Category, Tenant
from ledgerline_api.webhooks.service import WebhookIngestionService

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")


@pytest.fixture(scope="function")
def database():
    """
    Create a test database handle.

    The in-memory SQLite engine shares one connection between sessions, so
    tests keep every session short-lived (``with database.session_factory()``
    or ``tenant_scope``) and never nest them.
    """
    database = Database.from_url(TEST_DATABASE_URL)
    Base.metadata.create_all(database.engine)
    try:
        yield database
    finally:
        Base.metadata.drop_all(database.engine)
        database.dispose()


def _create_tenant(database: Database, label: str) -> str:
    with database.session_factory() as db:
        tenant = Tenant(label=label, status="active")
        db.add(tenant)
        db.commit()
        return tenant.id


@pytest.fixture
def tenant_id(database: Database) -> str:
    """Create a test tenant."""
    return _create_tenant(database, "test-tenant")


@pytest.fixture
def other_tenant_id(database: Database) -> str:
    """Create a second tenant for isolation tests."""
    return _create_tenant(database, "other-tenant")


@pytest.fixture
def categories(database: Database, tenant_id: str) -> dict:
    """Shared catalog plus one tenant-specific category."""
    with database.session_factory() as db:
        rows = {
            "Groceries": Category(tenant_id=None, name="Groceries"),
            "Dining": Category(tenant_id=None, name="Dining"),
            "Side Hustle": Category(tenant_id=tenant_id, name="Side Hustle"),
        }
        db.add_all(rows.values())
        db.commit()
        return {name: category.id for name, category in rows.items()}


@pytest.fixture
def ingest_event(database: Database):
    """Deliver one webhook event through its own unit of work."""

    def _ingest(tenant_id, transactions, event_id="evt-1", source="plaid", account_id="acct-1"):
        with tenant_scope(database, tenant_id) as db:
            return WebhookIngestionService(db).ingest(
                source,
                event_id,
                tenant_id,
                {"account_id": account_id, "transactions": transactions},
            )

    return _ingest


class FakeCompletionClient:
    """Completion client returning canned output."""

    def __init__(self, text="", tool_call=None, error=None):
        self.text = text
        self.tool_call = tool_call
        self.error = error
        self.calls = []

    def complete(self, system_prompt, user_content, tools):
        self.calls.append({"system_prompt": system_prompt, "user_content": user_content, "tools": tools})
        if self.error is not None:
            raise self.error
        return Completion(text=self.text, tool_call=self.tool_call)


@pytest.fixture
def fake_llm():
    """Factory for canned completion clients."""
    return FakeCompletionClient
