"""Scheduled job for syncing YouTube analytics."""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ytsync.analytics_sync import sync_all_users
from ytsync.database import init_db


def run_sync(window_days: int = None):
    """Run the analytics sync job."""
    print("Starting analytics sync...")

    # Ensure database is initialized
    init_db()

    results = sync_all_users(window_days)

    # Print summary
    print(f"\n=== Sync Summary ===")
    print(f"Total users: {results['total_users']}")
    print(f"Synced: {results['success']} success, {results['failed']} failed, {results['skipped']} skipped")
    print(f"Days stored: {results['records_stored']}")

    if results["errors"]:
        print(f"\nErrors:")
        for error in results["errors"]:
            print(f"  - {error}")

    return results


if __name__ == "__main__":
    run_sync()
