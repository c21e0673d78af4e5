"""Add notification_preferences: one row per user, created lazily with defaults on first read.

enable_*: in-app per category. email_*: email per category, gated by email_notifications.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_TOGGLES = (
    ("email_notifications", sa.false()),
    ("enable_rating_notifications", sa.true()),
    ("enable_comment_notifications", sa.true()),
    ("enable_follow_notifications", sa.true()),
    ("enable_author_notifications", sa.true()),
    ("email_rating_notifications", sa.false()),
    ("email_comment_notifications", sa.false()),
    ("email_follow_notifications", sa.false()),
    ("email_author_notifications", sa.false()),
    ("aggregation_enabled", sa.true()),
)


def upgrade() -> None:
    op.create_table(
        "notification_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *[sa.Column(name, sa.Boolean(), nullable=False, server_default=default) for name, default in _TOGGLES],
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_notification_preferences_user_id"),
    )


def downgrade() -> None:
    op.drop_table("notification_preferences")
