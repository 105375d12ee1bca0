"""Seed data for development and testing."""

from sqlalchemy.orm import Session

from ledgerline_api.models import Category, Tenant

SHARED_CATEGORIES = [
    "Dining",
    "Entertainment",
    "Groceries",
    "Health",
    "Income",
    "Rent",
    "Shopping",
    "Transport",
    "Travel",
    "Utilities",
]


def seed_categories(db: Session) -> int:
    """Seed the shared category catalog. Returns the number created."""
    existing = {
        name
        for (name,) in db.query(Category.name).filter(Category.tenant_id.is_(None)).all()
    }
    created = 0
    for name in SHARED_CATEGORIES:
        if name not in existing:
            db.add(Category(tenant_id=None, name=name))
            created += 1
    db.flush()
    return created


def seed_tenants(db: Session) -> Tenant:
    """Seed the demo tenant."""
    demo_tenant = db.query(Tenant).filter(Tenant.label == "demo").first()
    if not demo_tenant:
        demo_tenant = Tenant(label="demo", status="active")
        db.add(demo_tenant)
        db.flush()
    return demo_tenant


def seed_all(db: Session) -> Tenant:
    """Seed all initial data."""
    seed_categories(db)
    tenant = seed_tenants(db)
    db.commit()
    return tenant
