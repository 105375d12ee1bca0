"""Base service class with tenant isolation guardrails."""

from typing import Optional

from sqlalchemy.orm import Session

from ledgerline_api.db.session import scoped_tenant_id
from ledgerline_api.errors import ScopeError, TenantMismatch


class TenantScopedService:
    """Base for services that run inside a ``tenant_scope`` unit of work."""

    def __init__(self, db: Session):
        """Initialize service with a scoped session."""
        self.db = db

    @property
    def tenant_id(self) -> Optional[str]:
        return scoped_tenant_id(self.db)

    def _enforce_tenant(self, tenant_id: Optional[str] = None) -> str:
        """Return the tenant to operate on, refusing anything outside the scope."""
        scoped = self.tenant_id
        if not scoped:
            raise ScopeError("Operation requires a tenant scope")
        if tenant_id is not None and str(tenant_id) != scoped:
            raise TenantMismatch(f"Tenant {tenant_id} is outside the current scope")
        return scoped

    def _ensure_tenant_filter(self, query, tenant_id: Optional[str] = None):
        """Add the tenant filter to a single-entity query."""
        tenant_id = self._enforce_tenant(tenant_id)
        return query.filter(getattr(query.column_descriptions[0]["entity"], "tenant_id") == tenant_id)
