"""Audit trail model."""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint

from ledgerline_api.db.base import Base


class AuditEvent(Base):
    """Append-only audit trail with per-tenant hash chaining."""

    __tablename__ = "audit_events"
    __table_args__ = (
        UniqueConstraint("tenant_id", "tenant_sequence", name="uq_audit_events_tenant_sequence"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    tenant_sequence = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=False)
    actor_type = Column(String(50), nullable=False)  # provider, ai, user, system
    actor_id = Column(String(255), nullable=True)
    event_type = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(36), nullable=True, index=True)
    diff = Column(JSON, nullable=False)
    event_hash = Column(String(64), nullable=False, unique=True, index=True)
    previous_event_hash = Column(String(64), nullable=True)  # NULL for first event
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
