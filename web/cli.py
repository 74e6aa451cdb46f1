#!/usr/bin/env python3
"""
Operator CLI for the verification service.

Usage:
    python -m web.cli register-user <user_id> <email> <name> <user_type> <account_type>
    python -m web.cli list-users
    python -m web.cli issue-token <user_id> <email> [--admin]

Examples:
    # Seed a seller profile so they can submit verification requests
    python -m web.cli register-user farmer-1 ada@example.com "Ada Farmer" farmer business

    # Issue an admin bearer token (signed with AUTH_SECRET)
    python -m web.cli issue-token admin-1 ops@example.com --admin
"""

import argparse
import os
import sys
from typing import Optional

from core.verification import ValidationError, get_user_directory
from utils.config import Config
from web.auth import issue_token


def cmd_register_user(args, config: Config) -> int:
    """Create or replace a user profile."""
    directory = get_user_directory(config.users_path)
    try:
        profile = directory.register(
            user_id=args.user_id,
            email=args.email,
            name=args.name,
            user_type=args.user_type,
            account_type=args.account_type,
        )
    except ValidationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(f"Registered {profile.user_id} <{profile.email}>")
    return 0


def cmd_list_users(args, config: Config) -> int:
    """Print every registered profile."""
    directory = get_user_directory(config.users_path)
    for profile in directory.list_all():
        print(f"{profile.user_id}\t{profile.email}\t{profile.user_type}\t{profile.account_type}")
    print(f"{directory.count()} user(s)")
    return 0


def cmd_issue_token(args, config: Config) -> int:
    """Print a bearer token for a principal."""
    if not os.getenv("AUTH_SECRET"):
        print("Warning: AUTH_SECRET is not set; the token only works in this process", file=sys.stderr)
    print(
        issue_token(
            user_id=args.user_id,
            email=args.email,
            secret=config.auth_secret,
            is_admin=args.admin,
            ttl_hours=args.ttl_hours or config.token_ttl_hours,
        )
    )
    return 0


def main(argv: Optional[list[str]] = None, config: Optional[Config] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Marketplace Verification - Operator Tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m web.cli register-user farmer-1 ada@example.com "Ada Farmer" farmer business
    python -m web.cli issue-token admin-1 ops@example.com --admin

Data:
    Profiles are stored in $DATA_DIR/users.json
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Register command
    register_parser = subparsers.add_parser(
        "register-user",
        help="Create or replace a user profile",
    )
    register_parser.add_argument("user_id")
    register_parser.add_argument("email")
    register_parser.add_argument("name")
    register_parser.add_argument("user_type", help="e.g. farmer, buyer")
    register_parser.add_argument("account_type", help="e.g. business, individual")
    register_parser.set_defaults(func=cmd_register_user)

    # List command
    list_parser = subparsers.add_parser(
        "list-users",
        help="List registered user profiles",
    )
    list_parser.set_defaults(func=cmd_list_users)

    # Token command
    token_parser = subparsers.add_parser(
        "issue-token",
        help="Issue a signed bearer token",
    )
    token_parser.add_argument("user_id")
    token_parser.add_argument("email")
    token_parser.add_argument("--admin", action="store_true", help="Grant admin access")
    token_parser.add_argument(
        "--ttl-hours",
        type=int,
        default=None,
        help="Token lifetime (default: TOKEN_TTL_HOURS)",
    )
    token_parser.set_defaults(func=cmd_issue_token)

    args = parser.parse_args(argv)
    return args.func(args, config or Config.load())


if __name__ == "__main__":
    sys.exit(main())
