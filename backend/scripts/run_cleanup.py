#!/usr/bin/env python3
"""
Run the retention jobs once by hand: delete expired view-dedup markers and archived notifications
older than NOTIFICATIONS_RETENTION_DAYS (the scheduler does the same on a timer).
Run: cd backend && python scripts/run_cleanup.py
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from butternovel.db.session import SessionLocal
from butternovel.services import prune_expired_recent_viewers
from butternovel.services.notifications import prune_archived_notifications


def main():
    db = SessionLocal()
    try:
        viewers = prune_expired_recent_viewers(db)
        notifications = prune_archived_notifications(db)
        print(f"Done. recent_viewers={viewers}, archived notifications={notifications}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
