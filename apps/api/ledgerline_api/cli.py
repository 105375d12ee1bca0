"""CLI commands for Ledgerline API."""

import click
import uvicorn

from ledgerline_api.audit.service import AuditRecorder
from ledgerline_api.db.seed import seed_all
from ledgerline_api.db.session import create_database, tenant_scope
from ledgerline_api.errors import LedgerlineError
from ledgerline_api.settings import get_settings
from ledgerline_api.transactions.store import TransactionStore


@click.group()
@click.pass_context
def cli(ctx):
    """Ledgerline API CLI."""
    ctx.ensure_object(dict)
    if "database" not in ctx.obj:
        ctx.obj["database"] = create_database()


@cli.command()
@click.pass_context
def seed(ctx):
    """Seed the shared category catalog and the demo tenant."""
    click.echo("Seeding initial data...")
    db = ctx.obj["database"].session_factory()
    try:
        tenant = seed_all(db)
        click.echo(f"✓ Seed data created. Demo tenant: {tenant.id}")
    except Exception as e:
        db.rollback()
        click.echo(f"✗ Error seeding data: {e}", err=True)
        raise click.exceptions.Exit(1)
    finally:
        db.close()


@cli.command("verify-audit")
@click.option("--tenant", "tenant_id", required=True, help="Tenant whose audit chain to verify")
@click.pass_context
def verify_audit(ctx, tenant_id):
    """Recompute a tenant's audit hash chain."""
    with tenant_scope(ctx.obj["database"], tenant_id) as db:
        valid, error = AuditRecorder(db).verify_chain(tenant_id)

    if valid:
        click.echo(f"✓ Audit chain intact for tenant {tenant_id}")
    else:
        click.echo(f"✗ Audit chain broken for tenant {tenant_id}: {error}", err=True)
        raise click.exceptions.Exit(1)


@cli.command()
@click.option("--tenant", "tenant_id", required=True, help="Tenant owning the transaction")
@click.argument("transaction_id")
@click.pass_context
def history(ctx, tenant_id, transaction_id):
    """Print the version chain ending at TRANSACTION_ID."""
    try:
        with tenant_scope(ctx.obj["database"], tenant_id) as db:
            chain = TransactionStore(db).history(tenant_id, transaction_id)
            lines = [
                f"v{row.version}  {row.id}  {row.amount} {row.currency}  "
                f"status={row.status} category={row.category_id or '-'}"
                for row in chain
            ]
    except LedgerlineError as e:
        click.echo(f"✗ {e.message}", err=True)
        raise click.exceptions.Exit(1)

    for line in lines:
        click.echo(line)


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to API_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (defaults to API_PORT)")
def serve(host, port):
    """Run the HTTP API."""
    settings = get_settings()
    uvicorn.run(
        "ledgerline_api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    cli()
