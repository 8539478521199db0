"""Test store selection parsing and the store factory."""

import pytest

from artifact_cache.errors import InvalidStoreSpecError, UnsupportedStoreError
from artifact_cache.storage import FilesystemStore, make_store, parse_store_config
from artifact_cache.storage.factory import StoreConfig


class TestParseStoreConfig:
    """Test the kind[:path,opts] grammar."""

    def test_kind_only(self):
        """Test a bare kind has no path and no options."""
        config = parse_store_config("files")
        assert config.kind == "files"
        assert config.path == ""
        assert config.opts == {}

    def test_kind_and_path(self):
        """Test kind:path."""
        config = parse_store_config("files:/srv/cache")
        assert config.kind == "files"
        assert config.path == "/srv/cache"
        assert config.opts == {}

    def test_empty_path(self):
        """Test kind: with nothing after the colon."""
        config = parse_store_config("archives:")
        assert config.kind == "archives"
        assert config.path == ""

    def test_options(self):
        """Test valued, empty-valued and keyless options."""
        config = parse_store_config("kind:path,opt1=,=val3,opt2")
        assert config.kind == "kind"
        assert config.path == "path"
        assert config.opts == {"opt1": "", "opt2": ""}

    def test_option_values(self):
        """Test option values are kept verbatim."""
        config = parse_store_config("files:/srv/cache,work=/tmp/w,lock_timeout=2.5")
        assert config.opts == {"work": "/tmp/w", "lock_timeout": "2.5"}

    def test_empty_option_entries_skipped(self):
        """Test that consecutive commas are tolerated."""
        config = parse_store_config("files:/srv/cache,,nolock,")
        assert config.opts == {"nolock": ""}

    def test_path_may_contain_colon(self):
        """Test only the first colon separates the kind."""
        config = parse_store_config("files:C:/cache")
        assert config.kind == "files"
        assert config.path == "C:/cache"

    @pytest.mark.parametrize("text", ["", ":", ":path", ",opt1", "opt1=", "a,b:path"])
    def test_invalid_kind(self, text):
        """Test that the kind is required and must not look like an option."""
        with pytest.raises(InvalidStoreSpecError, match="kind"):
            parse_store_config(text)

    def test_str_form(self):
        """Test the rendered form parses back to the same selection."""
        config = parse_store_config("files:/srv/cache,nolock,work=/tmp/w")
        assert str(config) == "files:/srv/cache,nolock,work=/tmp/w"
        assert parse_store_config(str(config)) == config


class TestMakeStore:
    """Test store construction from a parsed selection."""

    def test_files_store(self, tmp_path, foo_id):
        """Test the files kind uses the nested layout."""
        store = make_store(parse_store_config(f"files:{tmp_path / 'cache'}"))
        try:
            assert isinstance(store, FilesystemStore)
            store.put(foo_id, [b"data"])
            assert (tmp_path / "cache" / foo_id.name / foo_id.version / foo_id.hash).is_file()
        finally:
            store.close()

    def test_files_default_path(self, tmp_path, monkeypatch):
        """Test the files kind defaults to ./vcpkg-cache."""
        monkeypatch.chdir(tmp_path)

        store = make_store(StoreConfig(kind="files"))
        try:
            assert store.root == tmp_path / "vcpkg-cache"
            assert store.root.is_dir()
        finally:
            store.close()

    def test_archives_store(self, tmp_path, foo_id):
        """Test the archives kind uses the vcpkg files-provider layout."""
        store = make_store(parse_store_config(f"archives:{tmp_path / 'archives'}"))
        try:
            store.put(foo_id, [b"zip"])
            expected = tmp_path / "archives" / foo_id.hash[:2] / f"{foo_id.hash}.zip"
            assert expected.read_bytes() == b"zip"
        finally:
            store.close()

    def test_archives_default_path_from_env(self, tmp_path, monkeypatch):
        """Test the archives kind honours vcpkg's cache location variable."""
        monkeypatch.setenv("VCPKG_DEFAULT_BINARY_CACHE", str(tmp_path / "vcpkg"))

        store = make_store(StoreConfig(kind="archives"))
        try:
            assert store.root == tmp_path / "vcpkg"
        finally:
            store.close()

    def test_archives_default_path_from_home(self, tmp_path, monkeypatch):
        """Test the archives kind falls back to ~/.cache/vcpkg/archives."""
        monkeypatch.delenv("VCPKG_DEFAULT_BINARY_CACHE", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))

        store = make_store(StoreConfig(kind="archives"))
        try:
            assert store.root == tmp_path / ".cache" / "vcpkg" / "archives"
        finally:
            store.close()

    def test_unsupported_kind(self, tmp_path):
        """Test unknown kinds are rejected by name."""
        with pytest.raises(UnsupportedStoreError, match="Store kind not supported: s3"):
            make_store(parse_store_config(f"s3:{tmp_path}"))

    def test_unknown_option(self, tmp_path):
        """Test typos in options are not silently ignored."""
        with pytest.raises(InvalidStoreSpecError, match="wrok"):
            make_store(parse_store_config(f"files:{tmp_path},wrok=/tmp"))

    def test_work_option(self, tmp_path):
        """Test the scratch directory can live elsewhere."""
        store = make_store(parse_store_config(f"files:{tmp_path / 'cache'},work={tmp_path / 'scratch'}"))
        try:
            assert store.work_dir.parent == tmp_path / "scratch"
            assert not (tmp_path / "cache" / ".work").exists()
        finally:
            store.close()

    def test_nolock_option(self, tmp_path):
        """Test identity locking can be disabled."""
        store = make_store(parse_store_config(f"files:{tmp_path},nolock"))
        try:
            assert store.config.lock is False
        finally:
            store.close()

    def test_lock_timeout_option(self, tmp_path):
        """Test the lock wait can be tuned."""
        store = make_store(parse_store_config(f"files:{tmp_path},lock_timeout=2.5"))
        try:
            assert store.config.lock is True
            assert store.config.lock_timeout == 2.5
        finally:
            store.close()

    def test_bad_lock_timeout(self, tmp_path):
        """Test a non-numeric lock timeout is rejected."""
        with pytest.raises(InvalidStoreSpecError, match="lock_timeout"):
            make_store(parse_store_config(f"files:{tmp_path},lock_timeout=soon"))
