"""Database models - import all models here for Alembic discovery."""

from ledgerline_api.models.ai import AIInteraction, ActionProposal
from ledgerline_api.models.audit import AuditEvent
from ledgerline_api.models.tenant import Tenant
from ledgerline_api.models.transaction import Category, Transaction
from ledgerline_api.models.webhook import WebhookEvent

__all__ = [
    "Tenant",
    "WebhookEvent",
    "Transaction",
    "Category",
    "AIInteraction",
    "ActionProposal",
    "AuditEvent",
]
