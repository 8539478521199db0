"""Base protocol for artifact store implementations."""

from typing import Iterable, Iterator, Protocol

from ..identity import ArtifactId


class ArtifactStore(Protocol):
    """
    Protocol for content-addressable artifact stores.

    Artifacts are write-once: there is no update and no delete. Failures are
    reported as StoreError subclasses whose ``kind`` tells the caller whether
    the artifact was missing, already present, or something else went wrong.
    All operations may run concurrently from multiple threads.
    """

    def get(self, identity: ArtifactId) -> Iterator[bytes]:
        """
        Open an artifact for streaming.

        The lookup happens when this is called, so a missing artifact is
        reported before any bytes are produced.

        Args:
            identity: Artifact to read

        Returns:
            Iterator over the artifact's bytes, in order

        Raises:
            ArtifactNotFoundError: If nothing is stored at ``identity``
            StoreError: On any other failure
        """
        ...

    def head(self, identity: ArtifactId) -> int:
        """
        Get an artifact's size without reading it.

        Args:
            identity: Artifact to inspect

        Returns:
            Exact size in bytes

        Raises:
            ArtifactNotFoundError: If nothing is stored at ``identity``
            StoreError: On any other failure
        """
        ...

    def put(self, identity: ArtifactId, chunks: Iterable[bytes]) -> None:
        """
        Store a new artifact.

        The whole input is consumed before the artifact becomes visible. If
        anything fails part way, no artifact is left at ``identity``.

        Args:
            identity: Artifact to create
            chunks: Content, consumed exactly once

        Raises:
            ArtifactExistsError: If ``identity`` is already occupied; the
                existing artifact is left untouched
            StoreError: On any other failure
        """
        ...

    def close(self) -> None:
        """
        Release scratch resources.

        Raises:
            WorkInProgressError: If writes are still in flight; safe to retry
        """
        ...
