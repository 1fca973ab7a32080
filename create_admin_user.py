"""
Create an administrator for the association backend.

Self-registration is disabled, so the first account has to be created here.

Usage:
    python create_admin_user.py
    python create_admin_user.py --email segreteria@example.org --name "Segreteria"
"""
import argparse
import getpass

from fastapi import HTTPException
from sqlalchemy.orm import Session

from gestionale.core.security import MIN_PASSWORD_LENGTH, create_user
from gestionale.db.session import get_engine, init_db


def parse_args():
    parser = argparse.ArgumentParser(description="Create an admin user.")
    parser.add_argument("--email", help="Email address of the new admin.")
    parser.add_argument("--name", help="Full name (optional).")
    return parser.parse_args()


def main():
    args = parse_args()

    print("=" * 60)
    print("Gestionale ASD - Create Admin User")
    print("=" * 60)
    print()

    init_db()
    print("✓ Database tables ready")

    email = (args.email or input("Enter email address: ")).strip()
    if not email:
        print("Error: Email is required")
        return
    full_name = args.name or input("Enter full name (optional): ").strip() or None

    password = getpass.getpass("Enter password: ")
    if password != getpass.getpass("Confirm password: "):
        print("Error: Passwords do not match")
        return
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"Error: Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return

    with Session(get_engine()) as db:
        try:
            user = create_user(db=db, email=email, password=password, full_name=full_name, role="admin")
        except HTTPException as exc:
            print(f"Error creating user: {exc.detail}")
            return

    print()
    print(f"✓ Admin {user.email} created (id {user.id})")


if __name__ == "__main__":
    main()
