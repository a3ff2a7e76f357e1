"""Ingestion services."""

from asset_ingest.errors import UploadValidationError
from asset_ingest.services.file_validation import FileValidationService
from asset_ingest.services.path_resolver import DEFAULT_PATH_TEMPLATE, extension_of, resolve_path
from asset_ingest.services.registry import AssetRegistry
from asset_ingest.services.upload_processor import UploadProcessor
from asset_ingest.services.upload_service import UploadService

__all__ = [
    "DEFAULT_PATH_TEMPLATE",
    "AssetRegistry",
    "FileValidationService",
    "UploadProcessor",
    "UploadService",
    "UploadValidationError",
    "extension_of",
    "resolve_path",
]
