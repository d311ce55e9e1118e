import argparse
import logging
from typing import Sequence

from pdv.core.roles import Role
from pdv.core.security import get_password_hash
from pdv.db import store
from pdv.db.session import SessionLocal, engine
from pdv.db.tables import metadata

logger = logging.getLogger(__name__)


def init_db() -> None:
    metadata.create_all(engine)
    logger.info("database schema ready")


def create_user(username: str, password: str, role: Role, full_name: str | None = None) -> dict:
    db = SessionLocal()
    try:
        if store.get_user_by_username(db, username):
            raise SystemExit(f"User {username} already exists")
        user = store.create_user(db, username, get_password_hash(password), role.value, full_name)
        db.commit()
    finally:
        db.close()
    logger.info("created user=%s role=%s", username, role.value)
    return user


def main(argv: Sequence[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    p = argparse.ArgumentParser(description="PDV API maintenance commands.")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database tables")

    user_cmd = sub.add_parser("create-user", help="Create a login for the API")
    user_cmd.add_argument("--username", required=True)
    user_cmd.add_argument("--password", required=True)
    user_cmd.add_argument("--role", choices=[r.value for r in Role], default=Role.CASHIER.value)
    user_cmd.add_argument("--full-name", default=None)

    args = p.parse_args(argv)

    if args.command == "init-db":
        init_db()
    elif args.command == "create-user":
        init_db()
        create_user(args.username, args.password, Role(args.role), args.full_name)


if __name__ == "__main__":
    main()
