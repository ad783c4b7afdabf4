#!/usr/bin/env python3
"""
Create a staff account.

Usage:
    python scripts/create_admin.py --email admin@example.com --first-name Ada --last-name Admin
    python scripts/create_admin.py --email agent@example.com --first-name Sam --last-name Support --role support

The password is read from --password or prompted for.
"""

import argparse
import getpass
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.rbac_policy import STAFF_ROLES
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.services.user_service import create_staff_user, ensure_default_roles
import app.models  # noqa: F401


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create a staff account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--first-name", required=True)
    parser.add_argument("--last-name", required=True)
    parser.add_argument("--password", help="Prompted for when omitted")
    parser.add_argument(
        "--role",
        action="append",
        choices=sorted(STAFF_ROLES),
        help="Repeat for several roles (default: admin)",
    )
    args = parser.parse_args(argv)

    password = args.password or getpass.getpass("Password: ")
    roles = args.role or ["admin"]

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_default_roles(db)
        user = create_staff_user(
            db, args.first_name, args.last_name, args.email, password, roles,
            password_min_length=settings.password_min_length,
        )
        user_id = user.id
    except ValidationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"Created user #{user_id} ({args.email}) with roles: {', '.join(roles)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
