"""One-time bootstrap script to create an Admin user.

Usage:
  python scripts/create_admin.py --email admin@example.com --name Admin --password secret
Or provide via env: ADMIN_EMAIL, ADMIN_NAME, ADMIN_PASSWORD
"""
import os
import argparse
from getpass import getpass

from assettrack_core.app.db import SessionLocal, create_db_and_tables
from assettrack_core.app.models import User, UserRole, UserStatus
from assettrack_core.app.security import get_password_hash, PasswordPolicy


def create_admin(db, email: str, password: str, name: str = "Admin"):
    """Returns the new user, or None when the email is already registered."""
    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        return None
    ok, errors = PasswordPolicy.validate(password)
    if not ok:
        raise ValueError("; ".join(errors))
    user = User(
        email=email,
        name=name,
        password_hash=get_password_hash(password),
        role=UserRole.ADMIN,
        status=UserStatus.ACTIVE,
    )
    db.add(user)
    db.flush()
    return user


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--email')
    parser.add_argument('--name')
    parser.add_argument('--password')
    args = parser.parse_args()

    email = args.email or os.getenv('ADMIN_EMAIL')
    name = args.name or os.getenv('ADMIN_NAME') or 'Admin'
    password = args.password or os.getenv('ADMIN_PASSWORD')
    if not email:
        email = input('Email: ').strip()
    if not password:
        password = getpass('Password: ')

    create_db_and_tables()
    db = SessionLocal()
    try:
        user = create_admin(db, email, password, name)
        if user is None:
            print('User already exists:', email)
            return
        db.commit()
        print('Created Admin user:', user.email)
    finally:
        db.close()


if __name__ == '__main__':
    main()
