"""
Centralized constants for views, notifications and scheduler jobs.

Change job IDs, windows or caps here instead of scattering literals across services and routes.
Windows that operators tune per environment come from settings (.env).
"""
from datetime import timedelta

from butternovel.config import settings

# Scheduler job IDs (must match ids used in main.py add_job)
PRUNE_RECENT_VIEWERS_JOB_ID = "prune_recent_viewers"
PRUNE_NOTIFICATIONS_JOB_ID = "prune_archived_notifications"
PRUNE_RECENT_VIEWERS_INTERVAL_MINUTES = 10

# Views: one count per (novel, viewer) per window
VIEW_DEDUP_WINDOW = timedelta(minutes=max(1, settings.view_dedup_minutes))
# Viewer key used when neither a user id nor an IP is available
ANONYMOUS_VIEWER_KEY = "anon:unknown"
# Hex chars of sha256(ip:user_agent) kept in guest viewer keys
GUEST_KEY_HASH_LENGTH = 32

# Notifications: merge window for aggregable types (~24h)
NOTIFICATION_AGGREGATION_WINDOW = timedelta(hours=max(1, settings.notification_aggregation_hours))
# Actors kept inside an aggregated payload (count keeps growing past this)
NOTIFICATION_MAX_ACTORS = max(1, settings.notification_max_actors)
# Actor names shown in an aggregated body before "and N others"
NOTIFICATION_NAMES_SHOWN = 2
NOTIFICATIONS_RETENTION_DAYS = max(7, settings.notifications_retention_days)

# Pagination clamps for GET /notifications
NOTIFICATIONS_DEFAULT_LIMIT = 20
NOTIFICATIONS_MAX_LIMIT = 100

# Payload text fields are short excerpts, never full comment bodies
PAYLOAD_EXCERPT_MAX_CHARS = 280
