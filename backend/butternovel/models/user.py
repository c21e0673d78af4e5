"""Reader/author account: only the columns the engagement services read (recipient email, actor name/avatar)."""
from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from butternovel.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(320), nullable=False, unique=True)
    name = Column(String(128), nullable=True)
    avatar_url = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
