"""
SQLAlchemy ORM models for persistence.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, String

from db import Base


class ThumbnailORM(Base):
    __tablename__ = "thumbnails"

    source_key = Column(String, primary_key=True, index=True)
    thumbnail_path = Column(String, nullable=False)
    highlight_path = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
