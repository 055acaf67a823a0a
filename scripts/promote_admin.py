"""
Grant (or revoke) the admin role for an existing account.

Usage:
    python scripts/promote_admin.py alice@example.com
    python scripts/promote_admin.py alice@example.com --revoke
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from gearhub.db import Base, SessionLocal, engine
from gearhub.errors import NotFound
from gearhub.services.users import set_role


def promote(email: str, revoke: bool = False) -> int:
    Base.metadata.create_all(bind=engine)
    role = "user" if revoke else "admin"
    db = SessionLocal()
    try:
        user = set_role(db, email, role)
        print(f"{user.email} is now {user.role}")
        return 0
    except NotFound:
        print(f"No account found for {email}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Change the role of an existing account")
    parser.add_argument("email", help="Email of the account")
    parser.add_argument("--revoke", action="store_true", help="Set the role back to 'user'")
    args = parser.parse_args()
    sys.exit(promote(args.email, args.revoke))
