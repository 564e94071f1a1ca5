"""
Thumbnail record repository backed by SQLAlchemy/SQLite.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from domain.models import RenderedAsset, ThumbnailRecord
from repositories.models import ThumbnailORM

logger = logging.getLogger(__name__)


def _record_from_orm(orm: ThumbnailORM) -> ThumbnailRecord:
    return ThumbnailRecord(
        source_key=orm.source_key,
        thumbnail_path=orm.thumbnail_path,
        highlight_path=orm.highlight_path,
        updated_at=orm.updated_at,
    )


class ThumbnailsRepository:
    """CRUD operations for thumbnail records."""

    def list_records(self, session: Session) -> List[ThumbnailRecord]:
        rows = session.query(ThumbnailORM).order_by(ThumbnailORM.source_key).all()
        return [_record_from_orm(r) for r in rows]

    def get_record(self, session: Session, source_key: str) -> Optional[ThumbnailRecord]:
        orm = session.get(ThumbnailORM, source_key)
        return _record_from_orm(orm) if orm else None

    def upsert_record(self, session: Session, record: ThumbnailRecord) -> ThumbnailRecord:
        orm = session.get(ThumbnailORM, record.source_key)
        if orm is None:
            orm = ThumbnailORM(source_key=record.source_key)
            session.add(orm)
        orm.thumbnail_path = record.thumbnail_path
        orm.highlight_path = record.highlight_path
        orm.updated_at = record.updated_at or datetime.utcnow()
        session.commit()
        session.refresh(orm)
        return _record_from_orm(orm)

    def delete_record(self, session: Session, source_key: str) -> bool:
        orm = session.get(ThumbnailORM, source_key)
        if not orm:
            return False
        session.delete(orm)
        session.commit()
        return True


class SqlThumbnailRecordStore:
    """Publishes rendered output locations to the thumbnails table."""

    def __init__(self, session_factory: sessionmaker, repo: Optional[ThumbnailsRepository] = None):
        self.session_factory = session_factory
        self.repo = repo or ThumbnailsRepository()

    def record(self, source_key: str, asset: RenderedAsset) -> None:
        record = ThumbnailRecord(
            source_key=source_key,
            thumbnail_path=str(asset.thumbnail_path),
            highlight_path=str(asset.highlight_path) if asset.highlight_path else None,
        )
        with self.session_factory() as session:
            self.repo.upsert_record(session, record)
        logger.debug("thumbnail record stored for %s", source_key)
