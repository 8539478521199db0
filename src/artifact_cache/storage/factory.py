"""Factory for creating artifact stores from a store selection string.

Grammar::

    kind[:[path][,opt[=val]|,opt]...]

Available kinds:

    files:[vcpkg-cache]
        Nested name/version/hash layout under the given directory.

    archives:[$VCPKG_DEFAULT_BINARY_CACHE or ~/.cache/vcpkg/archives]
        Layout of the vcpkg "files" binary provider, so an existing local
        vcpkg archive directory can be served as-is.

Options (both kinds):

    work=<dir>           scratch directory (default: <path>/.work)
    nolock               allow concurrent duplicate writes (last one wins)
    lock_timeout=<sec>   wait for another writer of the same identity
"""

import logging
import os
from pathlib import Path
from typing import Dict

from pydantic import BaseModel, Field

from ..constants import ARCHIVE_CACHE_ENV, DEFAULT_FILES_PATH
from ..errors import InvalidStoreSpecError, UnsupportedStoreError
from .base import ArtifactStore
from .fs import FilesystemStore, FsStoreConfig, Resolver, resolve_archive, resolve_default

logger = logging.getLogger(__name__)

_KNOWN_OPTIONS = {"work", "nolock", "lock_timeout"}


class StoreConfig(BaseModel):
    """Parsed store selection: which backend, where, and how."""

    kind: str
    path: str = ""
    opts: Dict[str, str] = Field(default_factory=dict)

    def __str__(self) -> str:
        rendered = f"{self.kind}:{self.path}"
        for key, value in self.opts.items():
            rendered += f",{key}" if value == "" else f",{key}={value}"
        return rendered


def parse_store_config(text: str) -> StoreConfig:
    """
    Parse a store selection string.

    Empty option entries (``,,``) and options without a key (``,=val``) are
    skipped. An option without ``=`` gets the empty string as its value.

    Args:
        text: Selection string, e.g. ``files:/srv/cache,work=/srv/tmp``

    Returns:
        Parsed StoreConfig

    Raises:
        InvalidStoreSpecError: If the kind is missing or malformed
    """
    kind, sep, rest = text.partition(":")
    if not kind:
        raise InvalidStoreSpecError(f"Store kind must be specified: {text!r}")
    if "," in kind or "=" in kind:
        raise InvalidStoreSpecError(f"Invalid store kind value: {kind!r}")

    if not sep:
        return StoreConfig(kind=kind)

    path, *entries = rest.split(",")
    opts: Dict[str, str] = {}
    for entry in entries:
        key, _, value = entry.partition("=")
        if not key:
            continue
        opts[key] = value

    return StoreConfig(kind=kind, path=path, opts=opts)


def _default_archives_path() -> Path:
    """Where vcpkg keeps its binary cache when none is configured."""
    configured = os.environ.get(ARCHIVE_CACHE_ENV)
    if configured:
        return Path(configured)
    return Path.home() / ".cache" / "vcpkg" / "archives"


def _fs_store_config(config: StoreConfig, root: Path, resolver: Resolver) -> FsStoreConfig:
    unknown = sorted(set(config.opts) - _KNOWN_OPTIONS)
    if unknown:
        raise InvalidStoreSpecError(
            f"Unknown option(s) for {config.kind} store: {', '.join(unknown)}"
        )

    fs_config = FsStoreConfig(root=root, resolver=resolver)
    if config.opts.get("work"):
        fs_config.work_dir = Path(config.opts["work"])
    if "nolock" in config.opts:
        fs_config.lock = False
    if "lock_timeout" in config.opts:
        try:
            fs_config.lock_timeout = float(config.opts["lock_timeout"])
        except ValueError:
            raise InvalidStoreSpecError(
                f"lock_timeout must be a number of seconds, got {config.opts['lock_timeout']!r}"
            )
    return fs_config


def make_store(config: StoreConfig) -> ArtifactStore:
    """
    Create a store instance for a parsed selection.

    Args:
        config: Parsed store selection

    Returns:
        Ready-to-use store (its startup self-test has passed)

    Raises:
        InvalidStoreSpecError: If options are invalid for the kind
        UnsupportedStoreError: If the kind is not known
        StoreInitError: If the store cannot be initialized
    """
    if config.kind == "files":
        root = Path(config.path or DEFAULT_FILES_PATH)
        return FilesystemStore(_fs_store_config(config, root, resolve_default))

    elif config.kind == "archives":
        root = Path(config.path) if config.path else _default_archives_path()
        logger.debug("Using vcpkg archives layout at %s", root)
        return FilesystemStore(_fs_store_config(config, root, resolve_archive))

    else:
        raise UnsupportedStoreError(config.kind)
