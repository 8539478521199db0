"""Storage package: the artifact store contract and its backends."""

from .base import ArtifactStore
from .factory import StoreConfig, make_store, parse_store_config
from .fs import FilesystemStore, FsStoreConfig, resolve_archive, resolve_default

__all__ = [
    "ArtifactStore",
    "FilesystemStore",
    "FsStoreConfig",
    "StoreConfig",
    "make_store",
    "parse_store_config",
    "resolve_archive",
    "resolve_default",
]
