"""Create an account (any role, admin included).

Usage:
  python scripts/create_user.py --email alice@example.com --password '...' \
      --full-name 'Alice Example' --role vendor [--organization 'Acme']

NOTE: This bypasses the public signup role restriction; keep it operator-only.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from garnet_platform.auth.roles import Role
from garnet_platform.auth.service import register
from garnet_platform.config import load_config
from garnet_platform.db import connect, init_db
from garnet_platform.errors import GarnetError


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--full-name", required=True)
    ap.add_argument("--role", choices=[r.value for r in Role], default=Role.VENDOR.value)
    ap.add_argument("--organization", default=None)
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    try:
        with connect(cfg.DB_DSN) as conn:
            account = register(
                conn,
                email=args.email,
                password=args.password,
                full_name=args.full_name,
                role=args.role,
                organization=args.organization,
                allowed_roles=tuple(Role),
            )
    except GarnetError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for problem in getattr(e, "errors", [])[1:]:
            print(f"  - {problem}", file=sys.stderr)
        raise SystemExit(1)

    print("Created account:")
    print(account)


if __name__ == "__main__":
    main()
