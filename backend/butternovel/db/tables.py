"""
Single source of truth for database tables that exist after migrations (001–004).

Use these names when writing raw SQL (e.g. TRUNCATE) and in alembic/env.py's model check.
"""
# All tables that exist in the DB. Must match models and migrations.
ALL_TABLE_NAMES = (
    "users",
    "novels",
    "recent_viewers",
    "notifications",
    "notification_preferences",
)
