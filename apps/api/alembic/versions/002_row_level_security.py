"""Enable row-level security keyed on app.current_tenant_id (PostgreSQL only).

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


TENANT_TABLES = [
    'webhook_events',
    'transactions',
    'ai_interactions',
    'ai_action_proposals',
    'audit_events',
]

TENANT_PREDICATE = "tenant_id = current_setting('app.current_tenant_id', true)"


def upgrade() -> None:
    if op.get_bind().dialect.name != 'postgresql':
        return

    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY tenant_isolation ON {table} "
            f"USING ({TENANT_PREDICATE}) WITH CHECK ({TENANT_PREDICATE})"
        )

    # Shared catalog rows (tenant_id IS NULL) are readable by everyone and
    # written only by the owner role (`ledgerline seed`), hence no FORCE here
    op.execute("ALTER TABLE categories ENABLE ROW LEVEL SECURITY")
    op.execute(
        f"CREATE POLICY tenant_isolation ON categories "
        f"USING (tenant_id IS NULL OR {TENANT_PREDICATE}) WITH CHECK ({TENANT_PREDICATE})"
    )

    # The view must evaluate the caller's policies, not the owner's
    op.execute("ALTER VIEW current_transactions SET (security_invoker = true)")


def downgrade() -> None:
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute("ALTER VIEW current_transactions RESET (security_invoker)")
    op.execute("DROP POLICY IF EXISTS tenant_isolation ON categories")
    op.execute("ALTER TABLE categories DISABLE ROW LEVEL SECURITY")
    for table in TENANT_TABLES:
        op.execute(f"DROP POLICY IF EXISTS tenant_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
