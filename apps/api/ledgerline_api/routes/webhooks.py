"""Inbound provider webhook routes."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ledgerline_api.db.session import Database, get_database, tenant_scope
from ledgerline_api.errors import ValidationError
from ledgerline_api.webhooks.service import WebhookIngestionService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class TransactionWebhook(BaseModel):
    """Plaid-style transaction webhook delivery."""

    source: Optional[str] = None
    event_id: Optional[str] = None
    tenant_id: Optional[str] = None
    payload: Optional[dict[str, Any]] = None


@router.post("/transactions", status_code=status.HTTP_200_OK)
def receive_transactions(
    delivery: TransactionWebhook,
    database: Database = Depends(get_database),
):
    """Ingest a transaction webhook; replays are acknowledged and ignored."""
    if not delivery.source or not delivery.event_id or not delivery.tenant_id or delivery.payload is None:
        raise ValidationError("Missing required fields: source, event_id, tenant_id, payload")

    with tenant_scope(database, delivery.tenant_id) as db:
        result = WebhookIngestionService(db).ingest(
            delivery.source, delivery.event_id, delivery.tenant_id, delivery.payload
        )

    if result["duplicate"]:
        return {"status": "duplicate_ignored", "message": "Event already processed"}
    return {"status": "ok", "ingested": result["ingested"]}
