import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from garnet_platform.auth.crud import bootstrap_admin_if_needed
from garnet_platform.config import load_config
from garnet_platform.db import connect, init_db


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN)
    with connect(cfg.DB_DSN) as conn:
        admin = bootstrap_admin_if_needed(
            conn,
            email=cfg.AUTH_BOOTSTRAP_ADMIN_EMAIL,
            password=cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD,
        )

    print(f"DB initialized: {cfg.DB_DSN}")
    if admin is not None:
        print(f"Bootstrap admin created: {admin['email']}")


if __name__ == "__main__":
    main()
