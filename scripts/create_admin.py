#!/usr/bin/env python3
"""
Script to create an admin user.

Admins cannot sign up through the API; run this once per admin:

    python scripts/create_admin.py --email admin@example.com --name "Campus Admin"

The password is read from ADMIN_PASSWORD or prompted for.
"""
import argparse
import getpass
import os
import sys
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import Database
from database.models import UserRole
from services.auth_service import AuthService
from core.exceptions import PortalError
import config


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Create a Brotodesk admin account")
    parser.add_argument("--email", help="Admin email (prompted if omitted)")
    parser.add_argument("--name", help="Display name (prompted if omitted)")
    parser.add_argument("--phone", default=None, help="Optional phone number")
    return parser.parse_args(argv)


def create_admin(argv=None):
    """Create an admin user."""
    args = parse_args(argv)

    # Initialize database
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()

    print("Creating admin user...")
    print("=" * 50)

    email = (args.email or input("Email: ")).strip()
    name = (args.name or input("Name: ")).strip()
    password = os.getenv("ADMIN_PASSWORD") or getpass.getpass("Password: ")

    if not email or not name or not password:
        print("Error: Email, name, and password are required")
        sys.exit(1)

    try:
        with config.db.get_session() as db:
            user = AuthService.create_user(
                db=db,
                email=email,
                password=password,
                name=name,
                role=UserRole.ADMIN,
                phone=args.phone
            )
            print("\nAdmin user created successfully!")
            print(f"  Email: {user.email}")
            print(f"  Role: {user.role.value}")
    except PortalError as e:
        print(f"\nError: {e.message}")
        sys.exit(1)
    finally:
        config.db.dispose()


if __name__ == "__main__":
    create_admin()
