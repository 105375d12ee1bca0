"""Versioned, append-only transaction store."""

import logging
from datetime import datetime
from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError

from ledgerline_api.audit.service import AuditRecorder
from ledgerline_api.errors import ConflictDuplicate, InvalidState, NotFound, ValidationError
from ledgerline_api.models import Category, Transaction
from ledgerline_api.services.base import TenantScopedService
from ledgerline_api.transactions.schemas import TransactionInput
from ledgerline_api.utils.metrics import transactions_ingested, transactions_skipped

logger = logging.getLogger(__name__)


class TransactionStore(TenantScopedService):
    """Append-only chain of transaction versions.

    Rows are never updated. A change is always a new row with the next
    version whose ``supersedes_transaction_id`` points at its predecessor.
    The (tenant_id, provider_tx_id, version) unique constraint arbitrates
    concurrent writers.
    """

    def _get_row(self, tenant_id: str, transaction_id: str) -> Optional[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.tenant_id == tenant_id, Transaction.id == transaction_id)
            .first()
        )

    def _find_version(self, tenant_id: str, provider_tx_id: str, version: int) -> Optional[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.tenant_id == tenant_id,
                Transaction.provider_tx_id == provider_tx_id,
                Transaction.version == version,
            )
            .first()
        )

    def _latest_version(self, tenant_id: str, provider_tx_id: str) -> Optional[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.tenant_id == tenant_id, Transaction.provider_tx_id == provider_tx_id)
            .order_by(Transaction.version.desc())
            .first()
        )

    def _current_query(self, tenant_id: str):
        """Max-version row per logical transaction."""
        latest = (
            self.db.query(
                Transaction.provider_tx_id.label("provider_tx_id"),
                func.max(Transaction.version).label("max_version"),
            )
            .filter(Transaction.tenant_id == tenant_id)
            .group_by(Transaction.provider_tx_id)
            .subquery()
        )
        return (
            self.db.query(Transaction)
            .join(
                latest,
                and_(
                    Transaction.provider_tx_id == latest.c.provider_tx_id,
                    Transaction.version == latest.c.max_version,
                ),
            )
            .filter(Transaction.tenant_id == tenant_id)
        )

    def _parse_input(self, raw: dict, index: int) -> TransactionInput:
        if not isinstance(raw, dict):
            raise ValidationError(f"transactions[{index}] must be an object")
        try:
            return TransactionInput.model_validate(raw)
        except PydanticValidationError as e:
            fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
            raise ValidationError(f"transactions[{index}] is invalid: {fields}") from e

    def ingest_batch(self, tenant_id: str, account_id: Optional[str], inputs: Iterable[dict]) -> int:
        """Insert every input version that does not exist yet.

        Existing (provider_tx_id, version) pairs are skipped silently. Any
        malformed input aborts the whole batch.
        """
        tenant_id = self._enforce_tenant(tenant_id)
        parsed = [self._parse_input(raw, index) for index, raw in enumerate(inputs)]
        audit = AuditRecorder(self.db)

        ingested = 0
        for tx_input in parsed:
            row = self._ingest_one(tenant_id, account_id, tx_input)
            if row is None:
                transactions_skipped.inc()
                continue

            audit.record(
                tenant_id=tenant_id,
                actor_type="provider",
                actor_id=None,
                event_type="transaction_ingested",
                entity_type="transactions",
                entity_id=row.id,
                diff={
                    "provider_tx_id": row.provider_tx_id,
                    "amount": row.amount,
                    "status": row.status,
                    "version": row.version,
                },
            )
            transactions_ingested.inc()
            ingested += 1

        return ingested

    def _ingest_one(
        self, tenant_id: str, account_id: Optional[str], tx_input: TransactionInput
    ) -> Optional[Transaction]:
        provider_tx_id = tx_input.provider_tx_id
        predecessor = None

        if tx_input.supersedes_transaction_id:
            predecessor = self._get_row(tenant_id, tx_input.supersedes_transaction_id)
            if predecessor is None or predecessor.provider_tx_id != provider_tx_id:
                raise ValidationError(
                    f"supersedes_transaction_id {tx_input.supersedes_transaction_id} "
                    f"is not a version of {provider_tx_id}"
                )
            version = tx_input.version or predecessor.version + 1
        else:
            version = tx_input.version or 1

        if self._find_version(tenant_id, provider_tx_id, version) is not None:
            logger.debug(
                "Skipping existing transaction version",
                extra={"tenant_id": tenant_id, "provider_tx_id": provider_tx_id, "version": version},
            )
            return None

        if predecessor is None and version > 1:
            predecessor = self._find_version(tenant_id, provider_tx_id, version - 1)
            if predecessor is None:
                raise ValidationError(f"{provider_tx_id} version {version} has no version {version - 1} to supersede")
        if predecessor is not None and predecessor.version != version - 1:
            raise ValidationError(
                f"{provider_tx_id} version {version} cannot supersede version {predecessor.version}"
            )

        row = Transaction(
            tenant_id=tenant_id,
            account_id=account_id,
            provider_tx_id=provider_tx_id,
            amount=tx_input.amount,
            currency=tx_input.currency,
            description=tx_input.description,
            occurred_at=tx_input.occurred_at or datetime.utcnow(),
            status=tx_input.status,
            version=version,
            supersedes_transaction_id=predecessor.id if predecessor else None,
            category_id=predecessor.category_id if predecessor else None,
        )
        try:
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError:
            # Lost the race to a concurrent writer of the same version
            if self._find_version(tenant_id, provider_tx_id, version) is None:
                raise
            return None
        return row

    def apply_category_change(
        self,
        tenant_id: str,
        transaction_id: str,
        category_id: str,
        actor_type: str = "user",
        actor_id: Optional[str] = None,
    ) -> dict:
        """Append a new version of ``transaction_id`` carrying ``category_id``."""
        tenant_id = self._enforce_tenant(tenant_id)
        current = self._get_row(tenant_id, transaction_id)
        if current is None:
            raise NotFound(f"Transaction {transaction_id} not found")

        category = (
            self.db.query(Category)
            .filter(Category.id == category_id, or_(Category.tenant_id == tenant_id, Category.tenant_id.is_(None)))
            .first()
        )
        if category is None:
            raise NotFound(f"Category {category_id} not found")

        latest = self._latest_version(tenant_id, current.provider_tx_id)
        if latest.id != current.id:
            raise InvalidState(
                f"Transaction {transaction_id} has been superseded by version {latest.version}",
                current_state="superseded",
            )

        new_version = current.version + 1
        row = Transaction(
            tenant_id=tenant_id,
            account_id=current.account_id,
            provider_tx_id=current.provider_tx_id,
            amount=current.amount,
            currency=current.currency,
            description=current.description,
            occurred_at=current.occurred_at,
            status=current.status,
            version=new_version,
            supersedes_transaction_id=current.id,
            category_id=category.id,
        )
        try:
            with self.db.begin_nested():
                self.db.add(row)
                self.db.flush()
        except IntegrityError as e:
            raise ConflictDuplicate(
                f"Version {new_version} of {current.provider_tx_id} was written concurrently"
            ) from e

        AuditRecorder(self.db).record(
            tenant_id=tenant_id,
            actor_type=actor_type,
            actor_id=actor_id,
            event_type="recategorize_executed",
            entity_type="transactions",
            entity_id=row.id,
            diff={
                "category_id": category.id,
                "previous_category_id": current.category_id,
                "supersedes_transaction_id": current.id,
                "new_version": new_version,
            },
        )

        return {"new_transaction_id": row.id, "new_version": new_version}

    def current_view(self, tenant_id: str, limit: Optional[int] = None) -> list[Transaction]:
        """Current version of every logical transaction, newest first."""
        tenant_id = self._enforce_tenant(tenant_id)
        query = self._current_query(tenant_id).order_by(
            Transaction.occurred_at.desc(), Transaction.provider_tx_id.asc()
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get_current(self, tenant_id: str, transaction_id: str) -> Optional[Transaction]:
        """Return the row only if it is the current version for the tenant."""
        tenant_id = self._enforce_tenant(tenant_id)
        return self._current_query(tenant_id).filter(Transaction.id == transaction_id).first()

    def current_ids(self, tenant_id: str, candidate_ids: Iterable[str]) -> set[str]:
        """Subset of ``candidate_ids`` that are current rows of the tenant."""
        tenant_id = self._enforce_tenant(tenant_id)
        candidate_ids = list(candidate_ids)
        if not candidate_ids:
            return set()
        rows = self._current_query(tenant_id).filter(Transaction.id.in_(candidate_ids)).all()
        return {row.id for row in rows}

    def history(self, tenant_id: str, transaction_id: str) -> list[Transaction]:
        """Version chain ending at ``transaction_id``, oldest first."""
        tenant_id = self._enforce_tenant(tenant_id)
        row = self._get_row(tenant_id, transaction_id)
        if row is None:
            raise NotFound(f"Transaction {transaction_id} not found")

        chain = []
        seen = set()
        while row is not None and row.id not in seen:
            chain.append(row)
            seen.add(row.id)
            row = self._get_row(tenant_id, row.supersedes_transaction_id) if row.supersedes_transaction_id else None
        chain.reverse()
        return chain

    def resolve_category(self, tenant_id: str, name: str) -> Optional[Category]:
        """Tenant category by name, falling back to the shared catalog."""
        tenant_id = self._enforce_tenant(tenant_id)
        category = (
            self.db.query(Category)
            .filter(Category.tenant_id == tenant_id, Category.name == name)
            .first()
        )
        if category is None:
            category = (
                self.db.query(Category)
                .filter(Category.tenant_id.is_(None), Category.name == name)
                .first()
            )
        return category

    def list_categories(self, tenant_id: str) -> list[Category]:
        """Categories visible to the tenant."""
        tenant_id = self._enforce_tenant(tenant_id)
        return (
            self.db.query(Category)
            .filter(or_(Category.tenant_id == tenant_id, Category.tenant_id.is_(None)))
            .order_by(Category.name.asc())
            .all()
        )
