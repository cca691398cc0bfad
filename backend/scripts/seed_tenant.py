#!/usr/bin/env python
"""Seed script to create a tenant and its initial administrator.

Creates the schema if needed, seeds the permission catalog, the ADMIN and
USER system roles of the tenant and an administrator identity. Run once per
tenant; the administrator then manages identities and roles through the API.

Usage:
    python backend/scripts/seed_tenant.py

Environment Variables:
    DATABASE_URL: Database connection string
    PASSWORD_PEPPER: Password hashing pepper (required)
    TENANT_CODE: Tenant code used at login (default: acme)
    TENANT_NAME: Display name (default: Acme)
    ADMIN_EMAIL: Email for admin user (default: admin@example.com)
    ADMIN_PASSWORD: Password for admin user (required)
    ADMIN_NAME: Display name for admin user (default: System Administrator)
"""

import os
import sys
from pathlib import Path

# Add backend/src to Python path
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from warden.database import SessionLocal, engine
from warden.errors import WardenError
from warden.models import Base
from warden.users.bootstrap import bootstrap_tenant


def main():
    """Create tenant, system roles and administrator."""
    admin_password = os.getenv("ADMIN_PASSWORD")
    if not admin_password:
        print("ERROR: ADMIN_PASSWORD environment variable is required")
        sys.exit(1)

    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        result = bootstrap_tenant(
            session,
            code=os.getenv("TENANT_CODE", "acme"),
            name=os.getenv("TENANT_NAME", "Acme"),
            admin_email=os.getenv("ADMIN_EMAIL", "admin@example.com"),
            admin_password=admin_password,
            admin_name=os.getenv("ADMIN_NAME", "System Administrator"),
        )
        print("SUCCESS: Tenant seeded")
        print(f"  Tenant: {result.tenant.code} (id {result.tenant.id}, {'created' if result.created_tenant else 'existing'})")
        print(f"  Admin:  {result.admin.email} (id {result.admin.id})")
    except WardenError as e:
        print(f"ERROR: {e.message}")
        sys.exit(1)
    finally:
        session.close()


if __name__ == "__main__":
    main()
