"""Dedup marker: (novel_id, viewer_key) was counted and must not be counted again before expires_at.

At most one row per pair (unique constraint); an expired row is logically absent and is
refreshed in place by the next counted view, or removed by the prune job.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from butternovel.db.base import Base


class RecentViewer(Base):
    __tablename__ = "recent_viewers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    novel_id = Column(Integer, ForeignKey("novels.id", ondelete="CASCADE"), nullable=False)
    viewer_key = Column(String(80), nullable=False)  # user:<id> | guest:<sha256 prefix> | anon:unknown
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (UniqueConstraint("novel_id", "viewer_key", name="uq_recent_viewers_novel_viewer"),)
