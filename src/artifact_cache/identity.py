"""Artifact identity: the (name, version, hash) key of every stored blob."""

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import InvalidPathError

# Segments that would climb out of the nested name/version/hash layout
_RESERVED_SEGMENTS = {".", ".."}


class ArtifactId(BaseModel):
    """Immutable cache key.

    The canonical form ``/name/version/hash`` doubles as the request path and,
    with the default resolver, as the storage sub-path.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    hash: str

    @field_validator("name", "version", "hash")
    @classmethod
    def validate_segment(cls, v: str) -> str:
        """Each part must be a single, non-empty path segment without NUL bytes."""
        if not v or "/" in v or "\x00" in v or v in _RESERVED_SEGMENTS:
            raise ValueError(f"Invalid identity segment: {v!r}")
        return v

    def __str__(self) -> str:
        return f"/{self.name}/{self.version}/{self.hash}"

    @classmethod
    def from_path(cls, path: str) -> "ArtifactId":
        """
        Parse a request path into an identity.

        Args:
            path: URL path such as ``/zlib/1.3.1/abcd...``

        Returns:
            ArtifactId built from the three segments, in order

        Raises:
            InvalidPathError: If the path is not exactly three non-empty segments
        """
        segments = path[1:].split("/") if path.startswith("/") else []
        if len(segments) != 3:
            raise InvalidPathError(path)

        name, version, hash_ = segments
        try:
            return cls(name=name, version=version, hash=hash_)
        except ValueError as e:
            raise InvalidPathError(path) from e
