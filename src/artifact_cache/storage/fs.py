"""Filesystem artifact store with crash-consistent writes.

Artifacts are staged in a private scratch directory and published with a
single atomic rename, so the store root only ever contains complete files.

Directory Structure:
    <root>/<resolved path>            durable artifacts (read-only, 0o444)
    <work_dir>/<scratch>/             staging area owned by one store instance
    <work_dir>/.locks/<xx>.lock       write locks, one per sha256 prefix bucket

Technical Considerations:
- The work directory must live on the same filesystem as the root, otherwise
  rename is not atomic (or fails). The startup self-test checks this.
- Lock files persist to avoid inode coordination issues (OS releases the lock
  on crash). Identities share 256 lock buckets so the lock directory stays
  bounded; existence is re-checked under the lock.
- A write aborted part way may leave its temp file in scratch when the process
  dies; scratch is never read, so the durable view stays consistent.
"""

from __future__ import annotations
import contextlib
import errno
import hashlib
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator, Optional

import portalocker

from ..constants import (
    ARCHIVE_SUFFIX,
    CHUNK_SIZE,
    LOCK_BUCKET_CHARS,
    LOCK_DIR_NAME,
    SELF_TEST_PAYLOAD,
    WORK_DIR_NAME,
)
from ..errors import (
    ArtifactExistsError,
    ArtifactNotFoundError,
    StoreError,
    StoreInitError,
    WorkInProgressError,
)
from ..identity import ArtifactId

logger = logging.getLogger(__name__)

Resolver = Callable[[ArtifactId], str]

# ---- Key resolution ---------------------------------------------------------

def resolve_default(identity: ArtifactId) -> str:
    """Nested ``name/version/hash`` layout, mirroring the request path."""
    return f"{identity.name}/{identity.version}/{identity.hash}"


def resolve_archive(identity: ArtifactId) -> str:
    """Flat-hash layout of the vcpkg ``files`` binary provider.

    Example:
        hash ``abcdef...`` is stored at ``ab/abcdef....zip``
    """
    return f"{identity.hash[:2]}/{identity.hash}{ARCHIVE_SUFFIX}"

# ---- Platform-specific helpers ----------------------------------------------

def _fsync_dir(path: Path) -> None:
    """Fsync a directory so a rename into it is durable.

    Best-effort: Windows and some filesystems don't support directory fsync.
    """
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY

        fd = os.open(str(path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", path)

# ---- FilesystemStore --------------------------------------------------------

@dataclass
class FsStoreConfig:
    """Construction parameters for FilesystemStore.

    Attributes:
        root: Durable store directory, created if missing
        work_dir: Scratch root; defaults to ``root/.work``. Must be on the
            same filesystem as ``root``.
        resolver: Maps an identity to a path relative to ``root``
        lock: Serialize writes with a bucketed file lock. When disabled,
            two concurrent puts of the same identity can both succeed and the
            last rename wins.
        lock_timeout: Seconds to wait for another writer of the same identity
        chunk_size: Read size when streaming artifacts out
    """

    root: Path
    work_dir: Optional[Path] = None
    resolver: Resolver = resolve_default
    lock: bool = True
    lock_timeout: float = 300.0
    chunk_size: int = CHUNK_SIZE


class FilesystemStore:
    """Content-addressable store over a directory tree.

    Construction runs a self-test (write, rename into root, delete) so a
    misconfigured store fails before it accepts traffic.

    Thread Safety:
        All operations may be called concurrently. Visibility relies only on
        the atomicity of rename; the optional identity lock makes duplicate
        concurrent writes exclusive.
    """

    def __init__(self, config: FsStoreConfig):
        """Create directories, allocate scratch space and run the self-test.

        Args:
            config: Store configuration

        Raises:
            StoreInitError: If any directory cannot be created or the
                self-test fails
        """
        self.config = config
        self.root = Path(config.root).absolute()
        work_root = Path(config.work_dir) if config.work_dir else self.root / WORK_DIR_NAME
        self.work_root = work_root.absolute()
        self.lock_dir = self.work_root / LOCK_DIR_NAME
        self.resolver = config.resolver

        for label, path in (("store", self.root), ("work", self.work_root), ("lock", self.lock_dir)):
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreInitError(f"Create {label} directory {path}: {e}") from e

        # Private scratch space isolates instances sharing one work root
        try:
            self.work_dir = Path(tempfile.mkdtemp(dir=self.work_root))
        except OSError as e:
            raise StoreInitError(f"Create work context at {self.work_root}: {e}") from e

        self._self_test()
        logger.debug("Filesystem store ready: root=%s work=%s", self.root, self.work_dir)

    def _self_test(self) -> None:
        """Prove write, cross-directory rename and delete permissions."""
        src = self.work_dir / ".self-test"
        dst = self.root / f".self-test-{self.work_dir.name}"

        step = "create file at work directory"
        try:
            with open(src, "xb") as f:
                step = "write to file at work directory"
                f.write(SELF_TEST_PAYLOAD)
                f.flush()
                os.fsync(f.fileno())
            step = "rename file from work directory to store directory"
            os.replace(src, dst)
            step = "remove file at store directory"
            os.remove(dst)
        except OSError as e:
            for leftover in (src, dst):
                with contextlib.suppress(OSError):
                    leftover.unlink()
            with contextlib.suppress(OSError):
                self.work_dir.rmdir()
            raise StoreInitError(f"Self-test failed: {step}: {e}") from e

    def resolve(self, identity: ArtifactId) -> Path:
        """
        Get the absolute storage path for an identity.

        Args:
            identity: Artifact identity

        Returns:
            Path under the store root

        Raises:
            StoreError: If the resolved path leaves the root or points into
                the work directory
        """
        target = Path(os.path.normpath(self.root / self.resolver(identity)))
        if target == self.root or not target.is_relative_to(self.root):
            raise StoreError(f"Path for {identity} resolves outside the store: {target}")
        if target.is_relative_to(self.work_root) and not self.root.is_relative_to(self.work_root):
            raise StoreError(f"Path for {identity} resolves into the work directory: {target}")
        return target

    def get(self, identity: ArtifactId) -> Iterator[bytes]:
        target = self.resolve(identity)
        try:
            f = open(target, "rb")
        except (FileNotFoundError, IsADirectoryError) as e:
            raise ArtifactNotFoundError(identity) from e
        except (OSError, ValueError) as e:
            raise StoreError(f"Open artifact {identity}: {e}") from e

        return self._read_chunks(f, identity)

    def _read_chunks(self, f: BinaryIO, identity: ArtifactId) -> Iterator[bytes]:
        with f:
            try:
                for chunk in iter(lambda: f.read(self.config.chunk_size), b""):
                    yield chunk
            except OSError as e:
                raise StoreError(f"Read artifact {identity}: {e}") from e

    def head(self, identity: ArtifactId) -> int:
        target = self.resolve(identity)
        try:
            st = os.stat(target)
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(identity) from e
        except (OSError, ValueError) as e:
            raise StoreError(f"Stat artifact {identity}: {e}") from e

        if not stat.S_ISREG(st.st_mode):
            raise ArtifactNotFoundError(identity)
        return st.st_size

    def put(self, identity: ArtifactId, chunks: Iterable[bytes]) -> None:
        """
        Store a new artifact.

        Technical Details:
            1. Existence check before touching the work area
            2. Optional per-identity file lock, then re-check
            3. Copy into a temp file in scratch and fsync it
            4. Make it read-only so it is immutable from the moment it appears
            5. Atomically rename onto the target path
            6. On any failure the temp file is removed

        Args:
            identity: Artifact to create
            chunks: Content; an exception raised while iterating aborts the
                write and propagates unchanged

        Raises:
            ArtifactExistsError: If the identity is already occupied
            StoreError: On filesystem failures or lock timeout
        """
        target = self.resolve(identity)
        if os.path.lexists(target):
            raise ArtifactExistsError(identity)

        if not self.config.lock:
            self._write(identity, target, chunks)
            return

        try:
            with portalocker.Lock(str(self._lock_path(target)), "w", timeout=self.config.lock_timeout):
                if os.path.lexists(target):
                    raise ArtifactExistsError(identity)
                self._write(identity, target, chunks)
        except portalocker.LockException as e:
            raise StoreError(f"Acquire write lock for {identity}: {e}") from e

    def _lock_path(self, target: Path) -> Path:
        key = target.relative_to(self.root).as_posix()
        bucket = hashlib.sha256(key.encode("utf-8")).hexdigest()[:LOCK_BUCKET_CHARS]
        return self.lock_dir / f"{bucket}.lock"

    def _write(self, identity: ArtifactId, target: Path, chunks: Iterable[bytes]) -> None:
        try:
            tmp = tempfile.NamedTemporaryFile(prefix=".put-", dir=str(self.work_dir), delete=False)
        except OSError as e:
            raise StoreError(f"Create temp file for {identity}: {e}") from e

        tmppath = Path(tmp.name)
        published = False
        try:
            with tmp:
                for chunk in chunks:
                    tmp.write(chunk)
                tmp.flush()
                os.fsync(tmp.fileno())

            os.chmod(tmppath, 0o444)
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(tmppath, target)
            published = True
        except OSError as e:
            raise StoreError(f"Move received file to storage for {identity}: {e}") from e
        finally:
            if not published:
                with contextlib.suppress(OSError):
                    tmppath.unlink()

        _fsync_dir(target.parent)
        logger.debug("Stored %s at %s", identity, target)

    def close(self) -> None:
        """
        Remove this instance's scratch directory.

        Calling it again after it succeeded is a no-op.

        Raises:
            WorkInProgressError: If a put is still copying into scratch
            StoreError: On other filesystem failures
        """
        try:
            self.work_dir.rmdir()
        except FileNotFoundError:
            return
        except OSError as e:
            if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                raise WorkInProgressError(self.work_dir) from e
            raise StoreError(f"Remove work directory {self.work_dir}: {e}") from e

        logger.debug("Closed work directory %s", self.work_dir)
