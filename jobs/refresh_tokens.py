"""Scheduled job for refreshing expiring YouTube tokens."""

import sys
from datetime import timedelta
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ytsync.config import config
from ytsync.database import init_db
from ytsync.tokens import refresh_expiring_tokens


def run_token_refresh(lead_minutes: int = None):
    """
    Refresh tokens that will expire within the specified minutes.

    Args:
        lead_minutes: Refresh tokens expiring within this many minutes
    """
    if lead_minutes is None:
        lead_minutes = config.TOKEN_REFRESH_LEAD_MINUTES
    print(f"Checking for tokens expiring within {lead_minutes} minutes...")

    # Ensure database is initialized
    init_db()

    results = refresh_expiring_tokens(timedelta(minutes=lead_minutes))

    if not results["refreshed"] and not results["failed"] and not results["errors"]:
        print("No tokens need refreshing.")
        return results

    for error in results["errors"]:
        print(f"  ✗ {error}")

    print(f"\n=== Refresh Summary ===")
    print(f"Refreshed: {results['refreshed']}")
    print(f"Failed: {results['failed']}")

    return results


if __name__ == "__main__":
    run_token_refresh()
