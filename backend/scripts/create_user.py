#!/usr/bin/env python3
"""
Create a user account, or change the role of an existing one.

Usage:
    # Bootstrap the first CMS administrator
    python scripts/create_user.py --email admin@example.com --password 'S3cret!' --role admin

    # Promote an existing account
    python scripts/create_user.py --email someone@example.com --role supplier
"""

import argparse
import os
import sys

# Add backend directory to path to import app modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.session import SessionLocal
from app.models.user import User, USER_ROLES
from app.services.auth_service import create_user


def create_or_update_user(email: str, password: str, role: str) -> bool:
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            old_role = user.role
            user.role = role
            db.commit()
            print(f"✅ Updated {email} (ID: {user.id}): role {old_role} → {role}")
            return True

        if not password:
            print(f"❌ User not found: {email} (pass --password to create it)")
            return False

        user = create_user(email, password, db, role=role)
        print(f"✅ Created {role} user {email} (ID: {user.id})")
        return True
    except Exception as e:
        print(f"❌ Error: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create a user or change its role")
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--password", help="Password (required when creating)")
    parser.add_argument("--role", choices=USER_ROLES, default="public", help="User role")
    args = parser.parse_args()

    sys.exit(0 if create_or_update_user(args.email, args.password, args.role) else 1)


if __name__ == "__main__":
    main()
