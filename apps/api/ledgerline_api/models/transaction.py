"""Transaction and category models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint

from ledgerline_api.db.base import Base, new_id


class Category(Base):
    """Spending category. ``tenant_id`` NULL marks the shared catalog."""

    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False, index=True)


class Transaction(Base):
    """One immutable version of a provider transaction.

    Logical identity is (tenant_id, provider_tx_id); each change appends a
    row with the next version that points back at its predecessor.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "provider_tx_id", "version", name="uq_transactions_tenant_provider_version"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    account_id = Column(String(255), nullable=True, index=True)
    provider_tx_id = Column(String(255), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    description = Column(Text, default="", nullable=False)
    occurred_at = Column(DateTime, nullable=False, index=True)
    status = Column(String(50), default="posted", nullable=False)  # pending, posted
    version = Column(Integer, default=1, nullable=False)
    supersedes_transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=True, index=True)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        """Serialize for API responses and LLM context."""
        return {
            "id": self.id,
            "account_id": self.account_id,
            "provider_tx_id": self.provider_tx_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "description": self.description,
            "occurred_at": self.occurred_at.isoformat(),
            "status": self.status,
            "version": self.version,
            "supersedes_transaction_id": self.supersedes_transaction_id,
            "category_id": self.category_id,
        }
