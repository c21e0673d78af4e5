"""Add recent_viewers: view dedup markers, at most one per (novel_id, viewer_key).

An expired marker is refreshed in place by the next counted view; the prune job deletes the rest.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "recent_viewers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("novel_id", sa.Integer(), sa.ForeignKey("novels.id", ondelete="CASCADE"), nullable=False),
        sa.Column("viewer_key", sa.String(80), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("novel_id", "viewer_key", name="uq_recent_viewers_novel_viewer"),
    )
    op.create_index("ix_recent_viewers_expires_at", "recent_viewers", ["expires_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_recent_viewers_expires_at", table_name="recent_viewers")
    op.drop_table("recent_viewers")
