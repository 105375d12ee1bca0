"""Read-only transaction and audit routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ledgerline_api.audit.service import AuditRecorder
from ledgerline_api.db.session import Database, get_database, tenant_scope
from ledgerline_api.transactions.store import TransactionStore

router = APIRouter(tags=["transactions"])


@router.get("/transactions")
def list_transactions(
    tenant_id: str = Query(...),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    database: Database = Depends(get_database),
):
    """Current version of every transaction, newest first."""
    with tenant_scope(database, tenant_id) as db:
        rows = TransactionStore(db).current_view(tenant_id, limit=limit)
        return {"transactions": [row.to_dict() for row in rows]}


@router.get("/transactions/{transaction_id}/history")
def transaction_history(
    transaction_id: str,
    tenant_id: str = Query(...),
    database: Database = Depends(get_database),
):
    """Version chain ending at ``transaction_id``, oldest first."""
    with tenant_scope(database, tenant_id) as db:
        chain = TransactionStore(db).history(tenant_id, transaction_id)
        return {"versions": [row.to_dict() for row in chain]}


@router.get("/audit/verify")
def verify_audit_chain(
    tenant_id: str = Query(...),
    database: Database = Depends(get_database),
):
    """Recompute the tenant's audit hash chain."""
    with tenant_scope(database, tenant_id) as db:
        valid, error = AuditRecorder(db).verify_chain(tenant_id)
    return {"valid": valid, "error": error}
