"""Content storage for uploaded asset revisions."""

from asset_ingest.storage.base import BaseStorageDriver, FileInfo, StoredFile
from asset_ingest.storage.factory import get_storage_driver
from asset_ingest.storage.local_driver import LocalStorageDriver

__all__ = ["BaseStorageDriver", "FileInfo", "LocalStorageDriver", "StoredFile", "get_storage_driver"]
