#!/usr/bin/env python3
"""
Trigger one page of the acceptance-expiry sweep over HTTP.

Usage:
    SETTLE_ADMIN_KEY=... python scripts/run_expiry_sweep.py
    python scripts/run_expiry_sweep.py --limit 200 --base-url https://api.example.com
"""

import argparse
import json
import os
import sys

import httpx

BASE_URL = "http://localhost:8000"
ENDPOINT = "/api/v1/internal/expire-bookings"


def run(base_url: str, admin_key: str, limit: int | None) -> int:
    """Call the sweep endpoint and print the report."""
    body = {"limit": limit} if limit else {}
    response = httpx.post(
        f"{base_url}{ENDPOINT}",
        headers={"x-admin-key": admin_key},
        json=body,
        timeout=60.0,
    )

    print(f"Status: {response.status_code}")
    try:
        print(json.dumps(response.json(), indent=2))
    except json.JSONDecodeError:
        print(response.text)
    return 0 if response.is_success else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the acceptance-expiry sweep")
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--limit", type=int, help="Bookings to scan (1-200)")
    parser.add_argument("--admin-key", default=os.environ.get("SETTLE_ADMIN_KEY"))
    args = parser.parse_args()

    if not args.admin_key:
        print("ERROR: pass --admin-key or set SETTLE_ADMIN_KEY")
        sys.exit(1)

    sys.exit(run(args.base_url.rstrip("/"), args.admin_key, args.limit))
