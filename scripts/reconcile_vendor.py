"""Sync a vendor's checklist questions into its questionnaire answers.

Usage:
  python scripts/reconcile_vendor.py --vendor 3f0c...-uuid [--checklist CHECKLIST_ID]
  python scripts/reconcile_vendor.py --vendor 42

Safe to re-run: unchanged questions are left untouched. Exit code is 1 when
any record failed (the others are still committed).
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from garnet_platform.config import load_config
from garnet_platform.db import connect
from garnet_platform.errors import GarnetError
from garnet_platform.questionnaires.sync import reconcile


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--vendor", required=True, help="Vendor uuid or internal numeric id")
    ap.add_argument("--checklist", default=None, help="Limit to one checklist")
    args = ap.parse_args()

    cfg = load_config()

    try:
        with connect(cfg.DB_DSN) as conn:
            result = reconcile(conn, args.vendor, args.checklist)
    except GarnetError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        raise SystemExit(2)

    print(json.dumps(result.to_response(), indent=2))
    if result.errors:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
