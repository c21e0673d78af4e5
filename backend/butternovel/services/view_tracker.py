"""
View tracking: decide whether a read of a novel counts as a new view.

One count per (novel, viewer_key) per dedup window. The dedup marker lives in recent_viewers
(unique on novel_id + viewer_key), so the decision holds across app instances:
  - live marker present            -> not counted, no writes
  - expired marker present         -> UPDATE ... WHERE expires_at <= now claims it (rowcount 1 wins)
  - no marker                      -> INSERT; a concurrent winner makes ours fail on the unique constraint
Only the claimer increments novels.view_count, in the same transaction as the claim.
Known crawlers/headless browsers are never counted.
"""
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from butternovel.config import settings
from butternovel.core.constants import ANONYMOUS_VIEWER_KEY, GUEST_KEY_HASH_LENGTH, VIEW_DEDUP_WINDOW
from butternovel.core.errors import NotFoundError, ServiceError
from butternovel.db.retry import db_retry
from butternovel.models.novel import Novel
from butternovel.models.recent_viewer import RecentViewer

logger = logging.getLogger(__name__)

_BOT_USER_AGENT = re.compile(
    r"bot|crawl|spider|slurp|headless|phantomjs|puppeteer|playwright|lighthouse|curl/|wget/|python-requests|httpclient",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ViewerIdentity:
    """Who is reading: a signed-in user id, else the client IP + user-agent pair."""
    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class ViewResult:
    counted: bool
    view_count: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def viewer_key_for(identity: ViewerIdentity) -> str:
    """
    user:<id> for signed-in readers; guest:<hash of ip:user_agent> for anonymous ones,
    so raw IPs are never stored. No user and no IP -> one shared low-priority anonymous key.
    """
    user_id = (identity.user_id or "").strip()
    if user_id:
        return f"user:{user_id}"
    ip = (identity.ip_address or "").strip()
    if not ip or ip.lower() == "unknown":
        return ANONYMOUS_VIEWER_KEY
    ua = (identity.user_agent or "").strip()
    digest = hashlib.sha256(f"{ip}:{ua}".encode("utf-8")).hexdigest()
    return f"guest:{digest[:GUEST_KEY_HASH_LENGTH]}"


def is_bot_user_agent(user_agent: str | None) -> bool:
    return bool(user_agent) and bool(_BOT_USER_AGENT.search(user_agent))


def _get_live_novel(db: Session, novel_id: int) -> Novel:
    novel = db.query(Novel).filter(Novel.id == novel_id, Novel.deleted_at.is_(None)).first()
    if not novel:
        raise NotFoundError("Novel not found")
    return novel


def _current_count(db: Session, novel_id: int) -> int:
    count = db.query(Novel.view_count).filter(Novel.id == novel_id).scalar()
    return int(count or 0)


def _claim_viewer_slot(db: Session, novel_id: int, viewer_key: str, now: datetime) -> bool:
    """Atomically take the (novel, viewer) marker for a new window. False if someone holds a live one."""
    expires_at = now + VIEW_DEDUP_WINDOW
    refreshed = db.execute(
        update(RecentViewer)
        .where(
            RecentViewer.novel_id == novel_id,
            RecentViewer.viewer_key == viewer_key,
            RecentViewer.expires_at <= now,
        )
        .values(expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    if refreshed.rowcount == 1:
        return True
    db.add(RecentViewer(novel_id=novel_id, viewer_key=viewer_key, expires_at=expires_at))
    try:
        db.flush()
    except IntegrityError:
        # Live marker already present (or a concurrent request just created it)
        db.rollback()
        return False
    return True


@db_retry("track_view")
def _track_view(db: Session, novel_id: int, viewer_key: str, now: datetime, countable: bool) -> ViewResult:
    _get_live_novel(db, novel_id)
    if not countable:
        return ViewResult(counted=False, view_count=_current_count(db, novel_id))

    live = (
        db.query(RecentViewer.id)
        .filter(
            RecentViewer.novel_id == novel_id,
            RecentViewer.viewer_key == viewer_key,
            RecentViewer.expires_at > now,
        )
        .first()
    )
    if live:
        return ViewResult(counted=False, view_count=_current_count(db, novel_id))

    if not _claim_viewer_slot(db, novel_id, viewer_key, now):
        return ViewResult(counted=False, view_count=_current_count(db, novel_id))

    db.execute(
        update(Novel)
        .where(Novel.id == novel_id)
        .values(view_count=Novel.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    count = _current_count(db, novel_id)
    logger.debug("Counted view novel_id=%s viewer=%s view_count=%s", novel_id, viewer_key[:12], count)
    return ViewResult(counted=True, view_count=count)


def track_view(
    db: Session,
    novel_id: int,
    identity: ViewerIdentity,
    now: datetime | None = None,
    *,
    countable: bool = True,
) -> ViewResult:
    """
    Count this read if the viewer has no live marker for the novel. Returns (counted, view_count).
    countable=False (rate-limited caller) and bot user-agents only report the current count.
    Raises NotFoundError for a missing or deleted novel. Any store failure degrades to
    counted=False (views are best-effort telemetry, never an error for the reader).
    """
    now = _as_utc(now) or _utcnow()
    if settings.view_bot_filter_enabled and is_bot_user_agent(identity.user_agent):
        countable = False

    viewer_key = viewer_key_for(identity)
    try:
        return _track_view(db, novel_id, viewer_key, now, countable)
    except NotFoundError:
        raise
    except ServiceError as e:
        logger.warning("View tracking degraded for novel_id=%s: %s", novel_id, e)
        db.rollback()
        return ViewResult(counted=False, view_count=0)


def prune_expired_recent_viewers(db: Session, now: datetime | None = None) -> int:
    """Delete expired dedup markers. Safe to run anytime: expired rows are already ignored."""
    now = _as_utc(now) or _utcnow()
    deleted = (
        db.query(RecentViewer)
        .filter(RecentViewer.expires_at <= now)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
