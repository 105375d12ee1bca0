"""Tenant model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String

from ledgerline_api.db.base import Base, new_id


class Tenant(Base):
    """Tenant model for multi-tenancy."""

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=new_id)
    label = Column(String(255), nullable=False, unique=True, index=True)
    status = Column(String(50), default="active", nullable=False)  # active, suspended
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
