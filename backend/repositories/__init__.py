from .thumbnails import SqlThumbnailRecordStore, ThumbnailsRepository
from . import models

__all__ = ["SqlThumbnailRecordStore", "ThumbnailsRepository", "models"]
