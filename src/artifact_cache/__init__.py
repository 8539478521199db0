"""artifact-cache: HTTP binary cache for immutable build artifacts."""

from .constants import CACHE_VERSION
from .errors import (
    ArtifactExistsError,
    ArtifactNotFoundError,
    CacheError,
    StoreError,
    StoreErrorKind,
)
from .identity import ArtifactId

__version__ = CACHE_VERSION

__all__ = [
    "ArtifactExistsError",
    "ArtifactId",
    "ArtifactNotFoundError",
    "CacheError",
    "StoreError",
    "StoreErrorKind",
    "__version__",
]
