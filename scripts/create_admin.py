"""Creates an ADMIN account, or resets its password if the email already exists.

Usage: python -m scripts.create_admin [email] [password]
Defaults come from ADMIN_EMAIL / ADMIN_PASSWORD.
"""
import sys

from sqlmodel import Session, select

import config
from database.session import engine, create_db_and_tables
from database.models import User
from services.auth_service import AuthService


def create_admin(email: str, password: str):
    create_db_and_tables()
    email = email.strip().lower()

    with Session(engine) as session:
        print(f"Searching for user {email}...")
        user = session.exec(select(User).where(User.email == email)).first()
        new_hash = AuthService.get_password_hash(password)

        if user:
            print(f"Found existing user (ID: {user.id}). Updating password and role...")
            user.password_hash = new_hash
            user.role = "ADMIN"
        else:
            print("User not found. Creating new admin...")
            user = User(name=config.ADMIN_NAME, email=email, password_hash=new_hash, role="ADMIN")
        session.add(user)
        session.commit()

    print(f"SUCCESS: {email} is an ADMIN")


if __name__ == "__main__":
    args = sys.argv[1:]
    create_admin(
        args[0] if len(args) > 0 else config.ADMIN_EMAIL,
        args[1] if len(args) > 1 else config.ADMIN_PASSWORD,
    )
