import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from accounts.database import Database, DuplicateUserError, resolve_database_path
from accounts.passwords import PasswordHashingError, hash_password
from accounts.schemas import RegisterRequest


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a user account")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument("username", help="Unique username (at least 3 characters)")
    parser.add_argument("--first-name", default="", help="Optional first name")
    parser.add_argument("--last-name", default="", help="Optional last name")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to ACCOUNTS_DB_PATH or data/accounts.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    request = RegisterRequest(
        email=args.email.strip(),
        username=args.username.strip(),
        password=password,
        first_name=args.first_name,
        last_name=args.last_name,
    )
    problem = request.validation_error()
    if problem:
        print(f"Error: {problem}", file=sys.stderr)
        return 1

    db_path = resolve_database_path(args.db_path or os.getenv("ACCOUNTS_DB_PATH"))
    database = Database(db_path)
    database.initialize()

    try:
        user = database.create_user(
            request.email,
            request.username,
            hash_password(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
        )
    except (DuplicateUserError, PasswordHashingError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.username} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
