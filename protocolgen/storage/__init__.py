"""
Storage collaborators: blob stores, repositories and bundle loading.
"""

from .blob_store import (
    InMemoryBlobStore,
    LocalBlobStore,
    build_storage_key,
    protocol_storage_key,
    sanitize_filename,
)
from .bundle import BundleError, ProjectBundle, load_bundle
from .repositories import (
    InMemoryBlueprintRepo,
    InMemoryOrgRepo,
    InMemoryProjectRepo,
    InMemoryProtocolRepo,
    InMemoryTaskPhotoRepo,
    InMemoryTaskRepo,
)

__all__ = [
    "InMemoryBlobStore",
    "LocalBlobStore",
    "build_storage_key",
    "protocol_storage_key",
    "sanitize_filename",
    "BundleError",
    "ProjectBundle",
    "load_bundle",
    "InMemoryBlueprintRepo",
    "InMemoryOrgRepo",
    "InMemoryProjectRepo",
    "InMemoryProtocolRepo",
    "InMemoryTaskPhotoRepo",
    "InMemoryTaskRepo",
]
