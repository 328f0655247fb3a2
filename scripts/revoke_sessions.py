#!/usr/bin/env python3
"""Revoke refresh tokens from the command line.

Usage:
    # Log one principal out of every device:
    python scripts/revoke_sessions.py --owner 0b7e7a52-5c1e-4a0e-9a43-2f4c6f1f0d11

    # Revoke every refresh token (account reset):
    python scripts/revoke_sessions.py --all --yes

Environment Variables:
    JWT_SECRET: Signing secret (required by settings validation)
    STORE_BACKEND: memory, postgres or redis
    DATABASE_URL / REDIS_URL: Connection string for the selected backend
"""
from __future__ import annotations

import argparse
import sys
import uuid
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def revoke_sessions(owner: uuid.UUID | None, revoke_all: bool) -> dict:
    """Revoke tokens for one owner or for everyone.

    Returns:
        dict with scope and the number of tokens revoked
    """
    # Import here to avoid loading config before env vars are set
    from sessionkit.config import Settings
    from sessionkit.runtime import build_session_service

    service = build_session_service(Settings.from_env())
    if revoke_all:
        count = service.reset_all()
        print(f"Revoked {count} refresh token(s) for all principals")
        return {"scope": "all", "revoked": count}

    count = service.logout_everywhere(owner)
    print(f"Revoked {count} refresh token(s) for {owner}")
    return {"scope": str(owner), "revoked": count}


def main():
    parser = argparse.ArgumentParser(
        description="Revoke sessionkit refresh tokens",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--owner", help="Principal id whose tokens to revoke")
    group.add_argument(
        "--all", action="store_true", help="Revoke every refresh token"
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm --all without prompting",
    )

    args = parser.parse_args()

    owner = None
    if args.owner:
        try:
            owner = uuid.UUID(args.owner)
        except ValueError:
            print(f"Error: {args.owner!r} is not a valid principal id")
            sys.exit(1)

    if args.all and not args.yes:
        print("Error: --all revokes every session; pass --yes to confirm")
        sys.exit(1)

    revoke_sessions(owner, args.all)


if __name__ == "__main__":
    main()
