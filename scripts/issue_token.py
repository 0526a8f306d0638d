#!/usr/bin/env python3
"""
Issue a short-lived access token for local testing.

Usage:
    python scripts/issue_token.py <user-uuid>
    python scripts/issue_token.py <user-uuid> --minutes 60
"""

import argparse
import sys
from datetime import timedelta
from pathlib import Path
from uuid import UUID

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.security import create_access_token  # noqa: E402


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Issue a JWT for a user id")
    parser.add_argument("user_id", type=UUID)
    parser.add_argument("--minutes", type=int, default=15)
    args = parser.parse_args()

    print(create_access_token({"sub": str(args.user_id)}, expires_delta=timedelta(minutes=args.minutes)))
