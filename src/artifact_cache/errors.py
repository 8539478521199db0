"""Custom exceptions for artifact-cache.

Store failures carry a ``kind`` from a closed enumeration so the protocol
layer can map them to status codes without caring which backend raised them.
"""

from enum import Enum


class CacheError(RuntimeError):
    """Base class for all artifact-cache errors."""
    pass


class StoreErrorKind(str, Enum):
    """Outcome classes a store operation can fail with."""
    NOT_FOUND = "not_found"            # No artifact at that identity
    ALREADY_EXISTS = "already_exists"  # Identity is already occupied
    OPAQUE = "opaque"                  # Anything else (I/O, permissions, ...)


# Storage Errors
class StoreError(CacheError):
    """Base class for store failures.

    Plain instances are opaque failures; the original exception is kept as
    ``__cause__``.
    """

    kind: StoreErrorKind = StoreErrorKind.OPAQUE


class ArtifactNotFoundError(StoreError):
    """No artifact is stored at the requested identity."""

    kind = StoreErrorKind.NOT_FOUND

    def __init__(self, identity):
        self.identity = identity
        super().__init__(f"Artifact not found: {identity}")


class ArtifactExistsError(StoreError):
    """An artifact already occupies the identity (write-once)."""

    kind = StoreErrorKind.ALREADY_EXISTS

    def __init__(self, identity):
        self.identity = identity
        super().__init__(f"Artifact already exists: {identity}")


class WorkInProgressError(StoreError):
    """Scratch space still holds in-flight writes; retry close after draining."""

    def __init__(self, work_dir):
        self.work_dir = work_dir
        super().__init__(
            f"Work directory {work_dir} is not empty. "
            f"A write may still be in progress; retry after requests drain."
        )


class StoreInitError(StoreError):
    """Store could not be constructed or failed its startup self-test."""
    pass


# Request Errors
class InvalidPathError(CacheError):
    """Request path does not address an artifact."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Invalid artifact path: {path!r}")


# Configuration Errors
class ConfigError(CacheError):
    """Base class for configuration errors."""
    pass


class InvalidStoreSpecError(ConfigError):
    """Store selection string or its options are malformed."""
    pass


class UnsupportedStoreError(ConfigError):
    """Store kind is not known."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Store kind not supported: {kind}")
