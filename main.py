"""Command-line interface for the UserDesk service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from userdesk.accounts import AccountDatabase, AccountExistsError, is_valid_email
from userdesk.auth import MIN_PASSWORD_LENGTH
from userdesk.config import Settings, load_settings
from userdesk.errors import UserDeskError
from userdesk.store import DocumentStore
from userdesk.users import UserDraft, UserService

logger = logging.getLogger("userdesk.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="UserDesk management utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: USERDESK_CONFIG or config/userdesk.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the application database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the service")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the HTTP service (default: 8080)",
    )

    account_parser = subparsers.add_parser(
        "create-account", help="Create an email/password login account"
    )
    account_parser.add_argument("email", help="Email address used to sign in")

    removal_parser = subparsers.add_parser(
        "delete-account", help="Remove a login account; its sessions end on next use"
    )
    removal_parser.add_argument("email", help="Email address of the account")

    subparsers.add_parser("admin", help="Launch the interactive administration console")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db", "create-account", "delete-account"}

    # global options may precede the subcommand
    head: list[str] = []
    rest = list(args_list)
    if len(rest) >= 2 and rest[0] == "--config":
        head, rest = rest[:2], rest[2:]

    if not rest:
        rest = ["serve"]
    else:
        first = rest[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*head, *rest])
        if first not in known_commands:
            if any(flag in rest for flag in ("-h", "--help")):
                return parser.parse_args([*head, *rest])
            rest = ["serve", *rest]

    return parser.parse_args([*head, *rest])


def _load_settings(config: str | None) -> Settings:
    return load_settings(Path(config).expanduser() if config else None)


def _initialise_database(settings: Settings) -> DocumentStore:
    store = DocumentStore(settings.database_path)
    store.initialize()
    AccountDatabase(settings.database_path).initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return store


def _serve(*, settings: Settings, store: DocumentStore, host: str, port: int) -> None:
    from userdesk.service import create_app
    import uvicorn

    logger.info("Starting UserDesk on http://%s:%s", host, port)
    app = create_app(settings=settings, store=store)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {MIN_PASSWORD_LENGTH} characters): ")
        if len(password) < MIN_PASSWORD_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_account(settings: Settings, email: str) -> int:
    if not is_valid_email(email.strip()):
        print(f"Invalid email address: {email}", file=sys.stderr)
        return 1

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating account.", file=sys.stderr)
        return 1

    accounts = AccountDatabase(settings.database_path)
    accounts.initialize()
    try:
        account = accounts.create_account(email, password)
    except (AccountExistsError, ValueError) as exc:
        print(f"Failed to create account: {exc}", file=sys.stderr)
        return 1

    print(f"Created account {account.uid} <{account.email}>")
    return 0


def _delete_account(settings: Settings, email: str) -> int:
    accounts = AccountDatabase(settings.database_path)
    accounts.initialize()
    if not accounts.delete_account(email):
        print(f"No account registered for {email}", file=sys.stderr)
        return 1
    print(f"Deleted account <{email.strip().lower()}>")
    return 0


def _run_admin_cli(service: UserService) -> None:
    """Provide an interactive console for managing user records."""

    print("UserDesk Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Delete a user")
            print("  4) Exit")

            choice = input("Enter choice [1-4]: ").strip()

            if choice == "1":
                _list_users(service)
            elif choice == "2":
                _add_user(service)
            elif choice == "3":
                _delete_user(service)
            elif choice == "4":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(service: UserService) -> None:
    try:
        users = service.list_users()
    except UserDeskError as exc:
        print(f"Failed to list users: {exc.message}")
        return
    if not users:
        print("No users found.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<22}  {'Name':<24}  {'Email':<32}  Updated")
    print("-" * 100)
    for user in users:
        updated = user.updated_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:<22}  {user.name:<24}  {user.email:<32}  {updated}")


def _add_user(service: UserService) -> None:
    print("\nCreate a new user (leave the name blank to cancel).")
    name = input("Name: ").strip()
    if not name:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip()

    try:
        user = service.create_user(UserDraft(name=name, email=email))
    except UserDeskError as exc:
        print(f"Failed to create user: {exc.message}")
        return

    print(f"Created user {user.id}: {user.name} <{user.email}>")


def _delete_user(service: UserService) -> None:
    user_id = input("User ID to delete: ").strip()
    if not user_id:
        print("Deletion cancelled.")
        return

    answer = input("Are you sure you want to delete this user? [y/N]: ").strip().lower()
    if answer not in {"y", "yes"}:
        print("Deletion cancelled.")
        return

    try:
        service.delete_user(user_id)
    except UserDeskError as exc:
        print(f"Failed to delete user: {exc.message}")
        return

    print(f"Deleted user {user_id}.")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = _load_settings(args.config)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    store = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, store=store, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(UserService(store))
    elif args.command == "create-account":
        return _create_account(settings, args.email)
    elif args.command == "delete-account":
        return _delete_account(settings, args.email)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
