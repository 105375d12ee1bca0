"""Inbound transaction payload schema."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class TransactionInput(BaseModel):
    """One provider transaction inside a webhook payload.

    Accepts the provider's alternate field names (``id``, ``name``, ``date``).
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    provider_tx_id: str = Field(..., min_length=1, validation_alias=AliasChoices("provider_tx_id", "id"))
    amount: Decimal = Field(..., max_digits=14, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    description: str = Field(default="", validation_alias=AliasChoices("description", "name"))
    occurred_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("occurred_at", "date"))
    status: str = "posted"
    version: Optional[int] = Field(default=None, ge=1)
    supersedes_transaction_id: Optional[str] = None

    @field_validator("occurred_at", mode="before")
    @classmethod
    def _accept_plain_dates(cls, value):
        if isinstance(value, str) and len(value) == 10:
            return f"{value}T00:00:00"
        return value

    @field_validator("occurred_at")
    @classmethod
    def _to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()
