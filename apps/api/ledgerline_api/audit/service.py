"""Audit recorder with per-tenant hash chaining."""

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from ledgerline_api.models import AuditEvent
from ledgerline_api.services.base import TenantScopedService
from ledgerline_api.settings import get_settings
from ledgerline_api.utils.metrics import audit_events_recorded

logger = logging.getLogger(__name__)


def canonical_json(data: Any) -> str:
    """Deterministic JSON used for hashing."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


class AuditRecorder(TenantScopedService):
    """Tamper-evident, append-only audit trail.

    There is intentionally no update or delete path. Failures propagate so
    the enclosing unit of work rolls back: an unaudited mutation must not
    be committed.
    """

    def _hash_event(self, event_data: dict) -> str:
        """Compute hash of event data."""
        return hashlib.sha256(canonical_json(event_data).encode()).hexdigest()

    def _get_last_event(self, tenant_id: str) -> Optional[AuditEvent]:
        """Get the most recent event for tenant."""
        return (
            self.db.query(AuditEvent)
            .filter(AuditEvent.tenant_id == tenant_id)
            .order_by(AuditEvent.tenant_sequence.desc())
            .first()
        )

    @staticmethod
    def _event_data(event: AuditEvent) -> dict:
        return {
            "tenant_id": event.tenant_id,
            "tenant_sequence": event.tenant_sequence,
            "actor_type": event.actor_type,
            "actor_id": event.actor_id,
            "event_type": event.event_type,
            "entity_type": event.entity_type,
            "entity_id": event.entity_id,
            "diff": event.diff,
            "previous_hash": event.previous_event_hash,
            "timestamp": event.created_at.isoformat(),
        }

    def record(
        self,
        tenant_id: str,
        actor_type: str,
        actor_id: Optional[str],
        event_type: str,
        entity_type: str,
        entity_id: Optional[str],
        diff: Optional[dict] = None,
    ) -> AuditEvent:
        """Append one audit event.

        Concurrent writers for the same tenant compete for the next
        ``tenant_sequence``; the loser retries against the new chain head.
        """
        tenant_id = self._enforce_tenant(tenant_id)
        normalized_diff = json.loads(canonical_json(diff or {}))
        retries = max(1, get_settings().audit_append_retries)

        for attempt in range(1, retries + 1):
            try:
                with self.db.begin_nested():
                    event = self._append(
                        tenant_id, actor_type, actor_id, event_type, entity_type, entity_id, normalized_diff
                    )
                break
            except IntegrityError:
                if attempt == retries:
                    logger.error(
                        "Audit append failed after retries",
                        extra={"tenant_id": tenant_id, "event_type": event_type},
                    )
                    raise
                logger.warning(
                    f"Audit sequence contention, retrying ({attempt}/{retries})",
                    extra={"tenant_id": tenant_id, "event_type": event_type},
                )

        audit_events_recorded.labels(event_type=event_type).inc()
        return event

    def _append(
        self,
        tenant_id: str,
        actor_type: str,
        actor_id: Optional[str],
        event_type: str,
        entity_type: str,
        entity_id: Optional[str],
        diff: dict,
    ) -> AuditEvent:
        last_event = self._get_last_event(tenant_id)
        event = AuditEvent(
            tenant_id=tenant_id,
            tenant_sequence=(last_event.tenant_sequence + 1) if last_event else 1,
            actor_type=actor_type,
            actor_id=actor_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            diff=diff,
            previous_event_hash=last_event.event_hash if last_event else None,
            created_at=datetime.utcnow(),
        )
        event.event_hash = self._hash_event(self._event_data(event))

        self.db.add(event)
        self.db.flush()
        return event

    def verify_chain(self, tenant_id: str) -> tuple[bool, Optional[str]]:
        """Verify hash chain integrity for tenant."""
        tenant_id = self._enforce_tenant(tenant_id)
        events = (
            self.db.query(AuditEvent)
            .filter(AuditEvent.tenant_id == tenant_id)
            .order_by(AuditEvent.tenant_sequence.asc())
            .all()
        )

        previous_hash = None
        expected_sequence = 1
        for event in events:
            if event.tenant_sequence != expected_sequence:
                return False, f"Sequence gap at {expected_sequence} (found {event.tenant_sequence})"
            if event.previous_event_hash != previous_hash:
                return False, f"Broken link at sequence {event.tenant_sequence}"
            if self._hash_event(self._event_data(event)) != event.event_hash:
                return False, f"Hash mismatch at sequence {event.tenant_sequence}"

            previous_hash = event.event_hash
            expected_sequence += 1

        return True, None
