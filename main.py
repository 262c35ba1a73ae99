#!/usr/bin/env python3
"""
Marquee -- administrative command line.

Grants capability codes to existing users and shows what a user holds,
against the database named by DATABASE_URL. Registration and activation
stay in the HTTP API; this tool exists for the grants the API cannot make
(e.g. movies:write for the first editor).

Usage:
  python main.py grant alice@example.com movies:write
  python main.py grant alice@example.com movies:read movies:write
  python main.py permissions alice@example.com

Environment variables:
  DATABASE_URL   SQLAlchemy URL. Defaults to marquee.db beside the package.
"""

import argparse
import sys
from typing import Optional

from auth.credentials import normalize_email
from auth.permissions import CATALOG
from auth.store import PermissionStore, UserStore
from core.config import get_settings
from core.db import make_engine
from core.errors import MarqueeError, NotFoundError


def _grant(users: UserStore, permissions: PermissionStore, email: str, codes: list[str]) -> int:
    unknown = sorted(set(codes) - set(CATALOG))
    if unknown:
        print(f"  [!] Unknown permission code(s): {', '.join(unknown)}. Known: {', '.join(CATALOG)}")
        return 2
    user = users.get_by_email(normalize_email(email))
    permissions.add_for_user(user.id, *codes)
    held = permissions.get_all_for_user(user.id)
    print(f"  {user.email}: {', '.join(sorted(held))}")
    return 0


def _show(users: UserStore, permissions: PermissionStore, email: str) -> int:
    user = users.get_by_email(normalize_email(email))
    held = permissions.get_all_for_user(user.id)
    print(f"  {user.email}: {', '.join(sorted(held)) if held else '(none)'}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="marquee",
        description="Marquee administrative commands.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    grant = sub.add_parser("grant", help="Grant one or more permission codes to a user.")
    grant.add_argument("email", help="Email address of an existing user.")
    grant.add_argument("codes", nargs="+", metavar="CODE", help=f"Permission code ({', '.join(CATALOG)}).")

    show = sub.add_parser("permissions", help="List the permission codes a user holds.")
    show.add_argument("email", help="Email address of an existing user.")

    args = parser.parse_args(argv)

    settings = get_settings()
    engine = make_engine(settings.database_url, settings.db_timeout_seconds)
    users = UserStore(engine)
    permissions = PermissionStore(engine)
    try:
        if args.command == "grant":
            return _grant(users, permissions, args.email, args.codes)
        return _show(users, permissions, args.email)
    except NotFoundError:
        print(f"  [!] No user with email '{args.email}'.")
        return 1
    except MarqueeError as e:
        print(f"  [!] {type(e).__name__}: {e}")
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
