"""Shared test fixtures and utilities."""

import os

import pytest
from starlette.testclient import TestClient

from artifact_cache.identity import ArtifactId
from artifact_cache.server import CacheServer
from artifact_cache.storage.fs import FilesystemStore, FsStoreConfig


@pytest.fixture
def foo_id():
    """Identity used across the store and server tests."""
    return ArtifactId(name="foo", version="1.0.0", hash="c0ffee" + "0" * 58)


@pytest.fixture
def bar_id():
    """Second identity, distinct from foo_id."""
    return ArtifactId(name="bar", version="2.1.0", hash="beef" + "1" * 60)


@pytest.fixture
def store(tmp_path):
    """Filesystem store rooted in a temp directory."""
    s = FilesystemStore(FsStoreConfig(root=tmp_path / "store"))
    yield s
    s.close()


@pytest.fixture
def random_data():
    """Factory fixture returning random payloads."""
    def _make(size: int = 128) -> bytes:
        return os.urandom(size)
    return _make


@pytest.fixture
def make_client(store):
    """Factory fixture building a TestClient around the shared store."""
    def _make(readable: bool = True, writable: bool = True) -> TestClient:
        server = CacheServer(store, readable=readable, writable=writable)
        return TestClient(server.app)
    return _make


@pytest.fixture
def client(make_client):
    """TestClient with reads and writes enabled."""
    return make_client()
