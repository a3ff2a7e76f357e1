"""Storage driver factory."""

from typing import Optional

from asset_ingest.config import Settings, settings as default_settings
from asset_ingest.storage.base import BaseStorageDriver
from asset_ingest.storage.local_driver import LocalStorageDriver


def get_storage_driver(
    app_settings: Optional[Settings] = None,
    provider: str = "local",
    base_path: Optional[str] = None,
) -> BaseStorageDriver:
    """Get storage driver instance.

    Args:
        app_settings: Settings to read ``storage_root`` from (defaults to global settings)
        provider: Storage provider (only ``local`` is supported)
        base_path: Explicit storage root, overrides settings

    Returns:
        Configured storage driver instance

    Raises:
        ValueError: If the provider is not supported

    Example:
        >>> driver = get_storage_driver(base_path="/tmp/assets")
    """
    app_settings = app_settings or default_settings
    provider = provider.lower()

    if provider == "local":
        return LocalStorageDriver({"base_path": base_path or app_settings.storage_root})

    raise ValueError(f"Unsupported storage provider: {provider}")
