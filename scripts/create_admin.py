"""
Create a dashboard admin with a password from the environment.
Usage: ADMIN_EMAIL=you@example.org ADMIN_PASSWORD=... python scripts/create_admin.py
"""
import os
import secrets

from sqlmodel import Session, select

from sanctuary.core.security import get_password_hash
from sanctuary.db import create_db_and_tables, engine
from sanctuary.models.user import User


def create_admin():
    admin_email = os.getenv("ADMIN_EMAIL", "admin@example.org")
    admin_password = os.getenv("ADMIN_PASSWORD")
    role = os.getenv("ADMIN_ROLE", "admin")

    if not admin_password:
        admin_password = secrets.token_urlsafe(32)
        print("No ADMIN_PASSWORD env var set. Generated secure password:")
        print(f"  {admin_password}")
        print("\nSave this password securely - it will not be shown again!\n")

    create_db_and_tables()
    with Session(engine) as session:
        user = session.exec(select(User).where(User.email == admin_email)).first()

        if not user:
            print(f"Creating {role} user: {admin_email}")
            session.add(
                User(
                    email=admin_email,
                    hashed_password=get_password_hash(admin_password),
                    role=role,
                    is_active=True,
                )
            )
            session.commit()
            print("User created successfully.")
        else:
            print(f"User {admin_email} already exists.")


if __name__ == "__main__":
    create_admin()
