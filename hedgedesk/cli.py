"""CLI tool for admin operations.

Usage:
    python -m hedgedesk.cli create-admin
    python -m hedgedesk.cli import-accounts <file>
"""

import sys
import getpass
from pathlib import Path

from sqlmodel import Session, select

from hedgedesk.database import engine, create_db_and_tables
from hedgedesk.models.operator import Operator
from hedgedesk.services.auth import hash_password, generate_totp_secret, get_totp_uri
from hedgedesk.services.registry import AccountRegistry, parse_account_lines


def create_admin():
    """Create an operator with TOTP setup."""
    create_db_and_tables()

    username = input("Username: ").strip()
    if not username:
        print("Username cannot be empty.")
        sys.exit(1)

    with Session(engine) as session:
        existing = session.exec(select(Operator).where(Operator.username == username)).first()
        if existing:
            print(f"Operator '{username}' already exists.")
            sys.exit(1)

    password = getpass.getpass("Password: ")
    password_confirm = getpass.getpass("Confirm password: ")
    if password != password_confirm:
        print("Passwords do not match.")
        sys.exit(1)

    totp_secret = generate_totp_secret()
    totp_uri = get_totp_uri(totp_secret, username)

    operator = Operator(
        username=username,
        hashed_password=hash_password(password),
        totp_secret=totp_secret,
    )

    with Session(engine) as session:
        session.add(operator)
        session.commit()

    print(f"\nOperator '{username}' created successfully.")
    print(f"\nTOTP Secret: {totp_secret}")
    print(f"TOTP URI: {totp_uri}")
    print("\nScan the QR code below with your authenticator app:")

    try:
        import qrcode
        qr = qrcode.QRCode(box_size=1, border=1)
        qr.add_data(totp_uri)
        qr.make(fit=True)
        qr.print_ascii(invert=True)
    except ImportError:
        print("(Install qrcode[pil] to display QR code in terminal)")


def import_accounts(path: str):
    """Import tab-separated name/apiKey/apiSecret lines from a file."""
    create_db_and_tables()

    file = Path(path)
    if not file.is_file():
        print(f"File not found: {path}")
        sys.exit(1)

    rows = parse_account_lines(file.read_text(encoding="utf-8"))
    if not rows:
        print("No complete name/apiKey/apiSecret lines found.")
        sys.exit(1)

    created, skipped = AccountRegistry(engine).add_many(rows)
    print(f"Imported {len(created)} accounts, skipped {len(skipped)}.")
    for name in skipped:
        print(f"  skipped: {name}")


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m hedgedesk.cli <command>")
        print("Commands: create-admin, import-accounts <file>")
        sys.exit(1)

    command = sys.argv[1]
    if command == "create-admin":
        create_admin()
    elif command == "import-accounts":
        if len(sys.argv) < 3:
            print("Usage: python -m hedgedesk.cli import-accounts <file>")
            sys.exit(1)
        import_accounts(sys.argv[2])
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
