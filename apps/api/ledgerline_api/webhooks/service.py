"""Idempotent webhook admission and transaction ingestion."""

import hashlib
import json
import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledgerline_api.audit.service import AuditRecorder
from ledgerline_api.errors import ValidationError
from ledgerline_api.models import WebhookEvent
from ledgerline_api.services.base import TenantScopedService
from ledgerline_api.transactions.store import TransactionStore
from ledgerline_api.utils.metrics import webhook_events

logger = logging.getLogger(__name__)


def hash_payload(payload: Any) -> str:
    """SHA-256 of the payload's canonical JSON serialization."""
    payload_bytes = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode()
    return hashlib.sha256(payload_bytes).hexdigest()


class IdempotencyLedger(TenantScopedService):
    """Records inbound event identifiers exactly once."""

    def _exists(self, tenant_id: str, source: str, event_id: str) -> bool:
        return (
            self.db.query(WebhookEvent.id)
            .filter(
                WebhookEvent.tenant_id == tenant_id,
                WebhookEvent.source == source,
                WebhookEvent.event_id == event_id,
            )
            .first()
            is not None
        )

    def admit(self, tenant_id: str, source: str, event_id: str, payload: Any) -> dict:
        """Try to record the event; ``admitted`` is False for a replay.

        No prior read: the unique key decides, so two concurrent deliveries
        yield exactly one winner.
        """
        tenant_id = self._enforce_tenant(tenant_id)
        if not source or not event_id:
            raise ValidationError("source and event_id are required")

        payload_hash = hash_payload(payload)
        webhook_event = WebhookEvent(
            tenant_id=tenant_id,
            source=source,
            event_id=event_id,
            payload_hash=payload_hash,
        )
        try:
            with self.db.begin_nested():
                self.db.add(webhook_event)
                self.db.flush()
        except IntegrityError:
            if not self._exists(tenant_id, source, event_id):
                raise
            webhook_events.labels(source=source, outcome="duplicate").inc()
            logger.info(
                "Duplicate webhook event ignored",
                extra={"tenant_id": tenant_id, "source": source, "event_id": event_id},
            )
            return {"admitted": False, "payload_hash": payload_hash, "webhook_event_id": None}

        webhook_events.labels(source=source, outcome="admitted").inc()
        return {"admitted": True, "payload_hash": payload_hash, "webhook_event_id": webhook_event.id}


class WebhookIngestionService:
    """Inbound flow: admit, audit receipt, ingest the batch."""

    def __init__(self, db: Session):
        """Initialize ingestion service."""
        self.db = db
        self.ledger = IdempotencyLedger(db)
        self.store = TransactionStore(db)
        self.audit = AuditRecorder(db)

    def ingest(self, source: str, event_id: str, tenant_id: str, payload: Optional[dict]) -> dict:
        """Process one webhook delivery inside the caller's unit of work."""
        if not source or not event_id or not tenant_id or payload is None:
            raise ValidationError("Missing required fields: source, event_id, tenant_id, payload")
        if not isinstance(payload, dict):
            raise ValidationError("payload must be an object")

        admission = self.ledger.admit(tenant_id, source, event_id, payload)
        if not admission["admitted"]:
            return {"duplicate": True, "ingested": 0}

        self.audit.record(
            tenant_id=tenant_id,
            actor_type="provider",
            actor_id=None,
            event_type="webhook_received",
            entity_type="webhook_events",
            entity_id=admission["webhook_event_id"],
            diff={"source": source, "event_id": event_id, "payload_hash": admission["payload_hash"]},
        )

        transactions = payload.get("transactions")
        if not isinstance(transactions, list):
            transactions = []
        account_id = payload.get("account_id")

        ingested = self.store.ingest_batch(
            tenant_id, str(account_id) if account_id is not None else None, transactions
        )
        logger.info(
            "Webhook ingested",
            extra={"tenant_id": tenant_id, "source": source, "event_id": event_id, "ingested": ingested},
        )
        return {"duplicate": False, "ingested": ingested}
