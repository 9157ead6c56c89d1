"""Serve the API with uvicorn.

Usage:
  python scripts/run_api.py [--host 0.0.0.0] [--port 8000] [--reload]

API_HOST / API_PORT set the defaults. Config is read from the environment
(and .env) by the app factory when uvicorn starts.
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--host", default=os.environ.get("API_HOST", "0.0.0.0"))
    ap.add_argument("--port", type=int, default=int(os.environ.get("API_PORT", "8000")))
    ap.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev only)")
    args = ap.parse_args()

    uvicorn.run(
        "garnet_platform.api.server:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
