#!/usr/bin/env python3
"""
AdminBoard maintenance CLI.

Usage:
  python main.py seed
  python main.py reset
  python main.py reset --yes
  python main.py invite "Jane Doe" jane@example.com
  python main.py invite "Jane Doe" jane@example.com --hours 24

Environment variables:
  DATABASE_URL     SQLAlchemy URL of the admin database (default: ./adminboard.db)
  SECRET_KEY       Signs invite tokens; must match the running server's key.
  ADMIN_EMAIL      Seeded admin account (default: admin@admin.com)
  ADMIN_PASSWORD   Password for a newly seeded admin account.
"""

import argparse
from datetime import datetime, timedelta, timezone
from typing import Optional

from audit.store import LogStore
from auth.store import AccessStore
from auth.tokens import create_invite_token
from core.config import get_settings
from maintenance.reset import reset_database
from maintenance.seed import seed_defaults


def _cmd_seed(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = AccessStore(settings.database_url)
    try:
        admin = seed_defaults(store, settings.admin_email, settings.admin_password)
    finally:
        store.close()
    print(f"  Defaults seeded. Admin user: {admin.email} (id={admin.id})")
    return 0


def _cmd_reset(args: argparse.Namespace) -> int:
    if not args.yes:
        answer = input("  This deletes every non-system user, role and log entry. Continue? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("  Aborted.")
            return 1
    settings = get_settings()
    store = AccessStore(settings.database_url)
    log_store = LogStore(settings.database_url)
    try:
        summary = reset_database(store, log_store)
    finally:
        log_store.close()
        store.close()
    print(
        f"  Reset complete: {summary.users_deleted} user(s), "
        f"{summary.roles_deleted} role(s), {summary.logs_deleted} log entr(ies) removed."
    )
    return 0


def _cmd_invite(args: argparse.Namespace) -> int:
    if not 1 <= args.hours <= 168:
        print("  [!] --hours must be between 1 and 168.")
        return 2
    expires_at = datetime.now(timezone.utc) + timedelta(hours=args.hours)
    token = create_invite_token(args.name.strip(), args.email.strip().lower(), expires_at)
    print(f"  Invite for {args.email} (expires {expires_at:%Y-%m-%d %H:%M} UTC):")
    print(token)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adminboard",
        description="AdminBoard maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Upsert permissions, the Super Admin role, default entities and the admin user")
    seed.set_defaults(func=_cmd_seed)

    reset = sub.add_parser("reset", help="Delete non-system users and roles and every log entry")
    reset.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    reset.set_defaults(func=_cmd_reset)

    invite = sub.add_parser("invite", help="Print a sign-up invite token")
    invite.add_argument("name", help="Display name of the invited user")
    invite.add_argument("email", help="Email address of the invited user")
    invite.add_argument("--hours", type=int, default=72, help="Validity in hours, 1-168 (default: 72)")
    invite.set_defaults(func=_cmd_invite)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
