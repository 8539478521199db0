"""Constants for artifact-cache."""

# Server defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 15151

# Store used when none is given on the command line or in the config file
DEFAULT_STORE = "files:vcpkg-cache"
DEFAULT_FILES_PATH = "vcpkg-cache"

# Scratch area (relative to the store root unless configured otherwise)
WORK_DIR_NAME = ".work"
LOCK_DIR_NAME = ".locks"
# Hex digits of the path digest naming a lock file (16 ** 2 = 256 lock files)
LOCK_BUCKET_CHARS = 2

# Layout of the vcpkg "files" binary provider
ARCHIVE_SUFFIX = ".zip"
ARCHIVE_CACHE_ENV = "VCPKG_DEFAULT_BINARY_CACHE"

# Copy granularity for reads and writes
CHUNK_SIZE = 64 * 1024

# Written, renamed and deleted once when a filesystem store starts
SELF_TEST_PAYLOAD = b"artifact-cache self-test"

# Version
CACHE_VERSION = "0.1.0"
