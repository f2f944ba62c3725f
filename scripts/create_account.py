import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userdesk.accounts import AccountDatabase, AccountExistsError, is_valid_email
from userdesk.auth import MIN_PASSWORD_LENGTH
from userdesk.config import resolve_database_path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a UserDesk login account")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to USERDESK_DB_PATH or data/userdesk.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < MIN_PASSWORD_LENGTH:
            print(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
                file=sys.stderr,
            )
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    if not is_valid_email(args.email.strip()):
        print("Error: invalid email address format.", file=sys.stderr)
        return 1
    password = prompt_for_password()

    db_path = resolve_database_path(args.db_path or os.getenv("USERDESK_DB_PATH"))

    accounts = AccountDatabase(db_path)
    accounts.initialize()

    try:
        account = accounts.create_account(args.email, password)
    except AccountExistsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created account {account.uid} <{account.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
