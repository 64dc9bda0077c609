"""
Service Wiring
==============

Builds the object graph explicitly: configuration, metadata store, the four
storage drivers, the storage manager and the blob service. Nothing is kept
in module-level state; callers own the returned service and close it.
"""

import logging
from typing import Optional

from .config import StorageConfig
from .metadata import MetadataStore
from .storage.blob_service import BlobService
from .storage.manager import StorageManager

logger = logging.getLogger(__name__)


def create_blob_service(config: Optional[StorageConfig] = None) -> BlobService:
    """
    Create a ready-to-use blob service.

    Args:
        config: Storage configuration (read from the environment if omitted)

    Returns:
        BlobService wired to a metadata store and a storage manager
    """
    if config is None:
        config = StorageConfig.from_env()

    metadata_store = MetadataStore(
        config.metadata.database_url, echo=config.metadata.echo
    )
    storage_manager = StorageManager.from_config(config, metadata_store)

    logger.info(
        f"Blob service created: default_backend={config.default_backend}, "
        f"configured={storage_manager.configured_backends()}"
    )
    return BlobService(metadata_store, storage_manager, config)
