from . import models
from .store import ContentStore, SqlContentStore, content_store

__all__ = ["ContentStore", "SqlContentStore", "content_store", "models"]
