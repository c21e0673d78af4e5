"""
Retention jobs run by the in-app BackgroundScheduler.

prune_recent_viewers: every few minutes, delete expired view-dedup markers (they are already ignored,
this only keeps the table small).
prune_archived_notifications: daily, delete archived notifications past the retention window.
"""
import logging

from butternovel.db.session import SessionLocal
from butternovel.services import prune_expired_recent_viewers
from butternovel.services.notifications import prune_archived_notifications

logger = logging.getLogger(__name__)


def run_prune_recent_viewers_job() -> None:
    db = SessionLocal()
    try:
        deleted = prune_expired_recent_viewers(db)
        if deleted:
            logger.info("Pruned %s expired recent viewer markers", deleted)
    except Exception as e:
        db.rollback()
        logger.exception("prune_recent_viewers job failed: %s", e)
    finally:
        db.close()


def run_prune_notifications_job() -> None:
    db = SessionLocal()
    try:
        deleted = prune_archived_notifications(db)
        logger.info("Pruned %s archived notifications past retention", deleted)
    except Exception as e:
        db.rollback()
        logger.exception("prune_archived_notifications job failed: %s", e)
    finally:
        db.close()
