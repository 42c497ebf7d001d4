"""Tests for backend selection."""

import pytest

from chowder.storage.backends import ObjectStoreBackend, SQLiteBackend
from chowder.storage.factory import NATIVE, WEB, create_backend, detect_runtime


class TestDetectRuntime:
    def test_defaults_to_native(self):
        assert detect_runtime() == NATIVE

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CHOWDER_RUNTIME", " Web ")

        assert detect_runtime() == WEB

    def test_rejects_unknown_runtime(self, monkeypatch):
        monkeypatch.setenv("CHOWDER_RUNTIME", "desktop")

        with pytest.raises(ValueError, match="desktop"):
            detect_runtime()


class TestCreateBackend:
    def test_native_uses_sqlite_file(self, tmp_path):
        backend = create_backend(NATIVE, tmp_path)

        assert isinstance(backend, SQLiteBackend)
        assert backend.name == "sqlite"

    def test_web_uses_object_store(self, tmp_path):
        backend = create_backend(WEB, tmp_path)

        assert isinstance(backend, ObjectStoreBackend)

    def test_runtime_falls_back_to_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHOWDER_RUNTIME", "web")

        assert isinstance(create_backend(None, tmp_path), ObjectStoreBackend)

    @pytest.mark.parametrize("runtime", [NATIVE, WEB])
    def test_in_memory_without_data_dir(self, runtime):
        backend = create_backend(runtime, None)
        backend.initialize()
        try:
            assert backend.supports_transactions()
        finally:
            backend.close()

    def test_unknown_runtime(self, tmp_path):
        with pytest.raises(ValueError):
            create_backend("desktop", tmp_path)

    @pytest.mark.parametrize("runtime", [NATIVE, WEB])
    def test_files_land_in_data_dir(self, runtime, tmp_path):
        backend = create_backend(runtime, tmp_path / "store")
        backend.initialize()
        backend.create_structures()
        backend.close()

        assert any((tmp_path / "store").iterdir())
