"""Tests for the versioned transaction store."""

from datetime import datetime
from decimal import Decimal

import pytest

from ledgerline_api.db.session import tenant_scope
from ledgerline_api.errors import ConflictDuplicate, InvalidState, NotFound, TenantMismatch, ValidationError
from ledgerline_api.models import AuditEvent, Category, Transaction
from ledgerline_api.transactions.store import TransactionStore


def _ingest(database, tenant_id, inputs, account_id="acct-1"):
    with tenant_scope(database, tenant_id) as db:
        return TransactionStore(db).ingest_batch(tenant_id, account_id, inputs)


def _versions(database, tenant_id, provider_tx_id):
    with database.session_factory() as db:
        rows = (
            db.query(Transaction)
            .filter(Transaction.tenant_id == tenant_id, Transaction.provider_tx_id == provider_tx_id)
            .order_by(Transaction.version.asc())
            .all()
        )
        return [(row.id, row.version, row.supersedes_transaction_id, row.category_id) for row in rows]


def test_ingest_applies_defaults(database, tenant_id):
    """Test that missing optional fields take their defaults."""
    assert _ingest(database, tenant_id, [{"id": "tx-1", "amount": -45.2, "name": "Whole Foods"}]) == 1

    with database.session_factory() as db:
        row = db.query(Transaction).one()
        assert row.provider_tx_id == "tx-1"
        assert row.amount == Decimal("-45.20")
        assert row.currency == "USD"
        assert row.description == "Whole Foods"
        assert row.status == "posted"
        assert row.version == 1
        assert row.supersedes_transaction_id is None
        assert row.account_id == "acct-1"
        assert isinstance(row.occurred_at, datetime)


def test_ingest_accepts_plain_dates_and_timezones(database, tenant_id):
    """Test that provider dates normalize to naive UTC."""
    _ingest(
        database,
        tenant_id,
        [
            {"id": "tx-1", "amount": 1, "date": "2024-01-15"},
            {"provider_tx_id": "tx-2", "amount": "2.50", "occurred_at": "2024-01-15T10:00:00+02:00", "currency": "eur"},
        ],
    )

    with database.session_factory() as db:
        rows = {row.provider_tx_id: row for row in db.query(Transaction).all()}
        assert rows["tx-1"].occurred_at == datetime(2024, 1, 15)
        assert rows["tx-2"].occurred_at == datetime(2024, 1, 15, 8, 0)
        assert rows["tx-2"].currency == "EUR"


def test_existing_version_is_skipped(database, tenant_id):
    """Test that re-sent versions are skipped without an audit entry."""
    assert _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}]) == 1
    assert _ingest(database, tenant_id, [{"id": "tx-1", "amount": 99}]) == 0

    with database.session_factory() as db:
        assert db.query(Transaction).count() == 1
        assert db.query(Transaction).one().amount == Decimal("10.00")
        assert db.query(AuditEvent).filter(AuditEvent.event_type == "transaction_ingested").count() == 1


def test_explicit_version_links_to_predecessor(database, tenant_id):
    """Test that a later version supersedes the one before it."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10, "status": "pending"}])
    assert _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10, "status": "posted", "version": 2}]) == 1

    (v1_id, v1, v1_prev, _), (v2_id, v2, v2_prev, _) = _versions(database, tenant_id, "tx-1")
    assert (v1, v2) == (1, 2)
    assert v1_prev is None
    assert v2_prev == v1_id


def test_supersedes_derives_next_version(database, tenant_id):
    """Test that naming the predecessor is enough to append a version."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}])
    [(v1_id, _, _, _)] = _versions(database, tenant_id, "tx-1")

    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 11, "supersedes_transaction_id": v1_id}])

    versions = _versions(database, tenant_id, "tx-1")
    assert [version for _, version, _, _ in versions] == [1, 2]
    assert versions[1][2] == v1_id


def test_supersedes_must_be_same_logical_transaction(database, tenant_id):
    """Test that a version cannot supersede another transaction's row."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}])
    [(v1_id, _, _, _)] = _versions(database, tenant_id, "tx-1")

    with pytest.raises(ValidationError):
        _ingest(database, tenant_id, [{"id": "tx-2", "amount": 10, "supersedes_transaction_id": v1_id}])


def test_version_gap_rejects_whole_batch(database, tenant_id):
    """Test that a version without its predecessor aborts the batch."""
    with pytest.raises(ValidationError):
        _ingest(
            database,
            tenant_id,
            [
                {"id": "tx-1", "amount": 10},
                {"id": "tx-2", "amount": 20, "version": 3},
            ],
        )

    with database.session_factory() as db:
        assert db.query(Transaction).count() == 0
        assert db.query(AuditEvent).count() == 0


def test_malformed_input_rejects_whole_batch(database, tenant_id):
    """Test that validation happens before anything is written."""
    with pytest.raises(ValidationError) as exc_info:
        _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}, {"id": "tx-2", "amount": "lots"}])
    assert "transactions[1]" in exc_info.value.message

    with database.session_factory() as db:
        assert db.query(Transaction).count() == 0


def test_ingested_versions_are_audited(database, tenant_id):
    """Test that every inserted version gets a transaction_ingested entry."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}, {"id": "tx-2", "amount": 20}])

    with database.session_factory() as db:
        events = (
            db.query(AuditEvent)
            .filter(AuditEvent.event_type == "transaction_ingested")
            .order_by(AuditEvent.tenant_sequence.asc())
            .all()
        )
        assert [event.diff["provider_tx_id"] for event in events] == ["tx-1", "tx-2"]
        assert all(event.actor_type == "provider" for event in events)
        assert events[0].diff["version"] == 1


def test_apply_category_change_appends_version(database, tenant_id, categories):
    """Test that a category change never rewrites the existing row."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}])
    [(v1_id, _, _, _)] = _versions(database, tenant_id, "tx-1")

    with tenant_scope(database, tenant_id) as db:
        result = TransactionStore(db).apply_category_change(
            tenant_id, v1_id, categories["Dining"], actor_id="user-1"
        )
    assert result["new_version"] == 2

    versions = _versions(database, tenant_id, "tx-1")
    assert versions[0] == (v1_id, 1, None, None)
    assert versions[1] == (result["new_transaction_id"], 2, v1_id, categories["Dining"])

    with database.session_factory() as db:
        event = db.query(AuditEvent).filter(AuditEvent.event_type == "recategorize_executed").one()
        assert event.entity_id == result["new_transaction_id"]
        assert event.actor_id == "user-1"
        assert event.diff["supersedes_transaction_id"] == v1_id
        assert event.diff["previous_category_id"] is None


def test_later_versions_inherit_category(database, tenant_id, categories):
    """Test that a provider update keeps the user's category."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10, "status": "pending"}])
    [(v1_id, _, _, _)] = _versions(database, tenant_id, "tx-1")
    with tenant_scope(database, tenant_id) as db:
        TransactionStore(db).apply_category_change(tenant_id, v1_id, categories["Groceries"])

    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10, "status": "posted", "version": 3}])

    versions = _versions(database, tenant_id, "tx-1")
    assert [version for _, version, _, _ in versions] == [1, 2, 3]
    assert versions[2][3] == categories["Groceries"]


def test_change_on_superseded_row_is_invalid(database, tenant_id, categories):
    """Test that only the current version can be recategorized."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}])
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 12, "version": 2}])
    [(v1_id, _, _, _), _] = _versions(database, tenant_id, "tx-1")

    with pytest.raises(InvalidState) as exc_info:
        with tenant_scope(database, tenant_id) as db:
            TransactionStore(db).apply_category_change(tenant_id, v1_id, categories["Dining"])
    assert exc_info.value.current_state == "superseded"


def test_change_requires_visible_category(database, tenant_id, other_tenant_id, categories):
    """Test that unknown or foreign categories are not found."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}])
    [(v1_id, _, _, _)] = _versions(database, tenant_id, "tx-1")

    with database.session_factory() as db:
        foreign = Category(tenant_id=other_tenant_id, name="Their Category")
        db.add(foreign)
        db.commit()
        foreign_id = foreign.id

    for category_id in ("no-such-category", foreign_id):
        with pytest.raises(NotFound):
            with tenant_scope(database, tenant_id) as db:
                TransactionStore(db).apply_category_change(tenant_id, v1_id, category_id)

    with pytest.raises(NotFound):
        with tenant_scope(database, tenant_id) as db:
            TransactionStore(db).apply_category_change(tenant_id, "no-such-transaction", categories["Dining"])


def test_lost_version_race_is_conflict(database, tenant_id, categories, monkeypatch):
    """Test that a concurrent writer of the same version yields ConflictDuplicate."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}])
    [(v1_id, _, _, _)] = _versions(database, tenant_id, "tx-1")
    with tenant_scope(database, tenant_id) as db:
        TransactionStore(db).apply_category_change(tenant_id, v1_id, categories["Dining"])

    # Simulate a writer that read the chain head before version 2 landed
    monkeypatch.setattr(
        TransactionStore,
        "_latest_version",
        lambda self, tenant_id, provider_tx_id: self._get_row(tenant_id, v1_id),
    )
    with pytest.raises(ConflictDuplicate):
        with tenant_scope(database, tenant_id) as db:
            TransactionStore(db).apply_category_change(tenant_id, v1_id, categories["Groceries"])

    assert len(_versions(database, tenant_id, "tx-1")) == 2


def test_current_view_returns_latest_versions(database, tenant_id, other_tenant_id):
    """Test that the current view holds one row per logical transaction."""
    _ingest(
        database,
        tenant_id,
        [
            {"id": "tx-1", "amount": 10, "date": "2024-01-10"},
            {"id": "tx-2", "amount": 20, "date": "2024-01-12"},
        ],
    )
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 11, "date": "2024-01-10", "version": 2}])
    _ingest(database, other_tenant_id, [{"id": "tx-9", "amount": 99}])

    with tenant_scope(database, tenant_id) as db:
        rows = TransactionStore(db).current_view(tenant_id)
        assert [(row.provider_tx_id, row.version) for row in rows] == [("tx-2", 1), ("tx-1", 2)]

        limited = TransactionStore(db).current_view(tenant_id, limit=1)
        assert [row.provider_tx_id for row in limited] == ["tx-2"]


def test_current_ids_excludes_superseded_and_foreign(database, tenant_id, other_tenant_id):
    """Test that only current rows of the tenant resolve."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}])
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 11, "version": 2}])
    _ingest(database, other_tenant_id, [{"id": "tx-9", "amount": 99}])
    [(v1_id, _, _, _), (v2_id, _, _, _)] = _versions(database, tenant_id, "tx-1")
    [(foreign_id, _, _, _)] = _versions(database, other_tenant_id, "tx-9")

    with tenant_scope(database, tenant_id) as db:
        assert TransactionStore(db).current_ids(tenant_id, [v1_id, v2_id, foreign_id]) == {v2_id}
        assert TransactionStore(db).current_ids(tenant_id, []) == set()


def test_history_walks_chain_oldest_first(database, tenant_id):
    """Test that history follows supersedes links back to version 1."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 10}])
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 11, "version": 2}])
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": 12, "version": 3}])
    versions = _versions(database, tenant_id, "tx-1")

    with tenant_scope(database, tenant_id) as db:
        chain = TransactionStore(db).history(tenant_id, versions[2][0])
        assert [row.version for row in chain] == [1, 2, 3]

        with pytest.raises(NotFound):
            TransactionStore(db).history(tenant_id, "missing")


def test_resolve_category_prefers_tenant_catalog(database, tenant_id, categories):
    """Test that tenant categories shadow shared ones by name."""
    with tenant_scope(database, tenant_id) as db:
        store = TransactionStore(db)
        assert store.resolve_category(tenant_id, "Side Hustle").id == categories["Side Hustle"]
        assert store.resolve_category(tenant_id, "Dining").id == categories["Dining"]
        assert store.resolve_category(tenant_id, "Nope") is None
        assert [c.name for c in store.list_categories(tenant_id)] == ["Dining", "Groceries", "Side Hustle"]


def test_store_refuses_foreign_tenant(database, tenant_id, other_tenant_id):
    """Test that the store only works for the scoped tenant."""
    with tenant_scope(database, tenant_id) as db:
        with pytest.raises(TenantMismatch):
            TransactionStore(db).current_view(other_tenant_id)


def test_amount_with_sub_cent_precision_is_rejected(database, tenant_id):
    """Test that amounts the column would round abort the batch."""
    with pytest.raises(ValidationError) as exc_info:
        _ingest(database, tenant_id, [{"id": "tx-1", "amount": "12.345"}])
    assert "amount" in exc_info.value.message

    with database.session_factory() as db:
        assert db.query(Transaction).count() == 0
        assert db.query(AuditEvent).count() == 0


def test_amount_beyond_column_width_is_rejected(database, tenant_id):
    """Test that amounts wider than Numeric(14, 2) abort the batch."""
    with pytest.raises(ValidationError):
        _ingest(database, tenant_id, [{"id": "tx-1", "amount": "1234567890123.45"}])

    with database.session_factory() as db:
        assert db.query(Transaction).count() == 0


def test_audited_amount_matches_stored_row(database, tenant_id):
    """Test that the ingestion audit entry records the amount actually stored."""
    _ingest(database, tenant_id, [{"id": "tx-1", "amount": "12.30"}])

    with database.session_factory() as db:
        row = db.query(Transaction).one()
        event = db.query(AuditEvent).filter(AuditEvent.event_type == "transaction_ingested").one()
        assert Decimal(event.diff["amount"]) == row.amount == Decimal("12.30")
