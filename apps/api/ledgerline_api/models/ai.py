"""AI interaction and action proposal models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Text

from ledgerline_api.db.base import Base, new_id

PROPOSAL_PROPOSED = "proposed"
PROPOSAL_EXECUTED = "executed"


class AIInteraction(Base):
    """One answered question. Immutable once created."""

    __tablename__ = "ai_interactions"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    question = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    citations = Column(JSON, nullable=False)  # verified transaction ids
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ActionProposal(Base):
    """AI-suggested mutation awaiting human confirmation."""

    __tablename__ = "ai_action_proposals"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    ai_interaction_id = Column(String(36), ForeignKey("ai_interactions.id"), nullable=True)
    action_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), default=PROPOSAL_PROPOSED, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)
    executed_at = Column(DateTime, nullable=True)
