"""Tests for StoreProvisioner and prepare_location."""

import pytest

from commitrace.exceptions import ProvisioningError
from commitrace.store.provisioner import StoreProvisioner, prepare_location


class TestPrepareLocation:
    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "a" / "b" / "store.db"
        assert prepare_location(path) == path
        assert path.parent.is_dir()
        assert not path.exists()

    def test_existing_path_raises(self, tmp_path):
        path = tmp_path / "store.db"
        path.write_bytes(b"")
        with pytest.raises(ProvisioningError) as exc_info:
            prepare_location(path)
        assert exc_info.value.path == str(path)

    def test_parent_is_a_file_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(ProvisioningError):
            prepare_location(blocker / "store.db")


class TestStoreProvisioner:
    @pytest.mark.asyncio
    async def test_location_is_fresh_and_removed(self, provisioner):
        async with provisioner.location("a") as path:
            assert not path.exists()
            assert path.parent.is_dir()
            path.write_bytes(b"data")
            (path.parent / (path.name + "-wal")).write_bytes(b"wal")
            directory = path.parent
        assert not directory.exists()

    @pytest.mark.asyncio
    async def test_locations_are_distinct(self, provisioner):
        async with provisioner.location("a") as a_path:
            async with provisioner.location("b") as b_path:
                assert a_path != b_path
                assert a_path.parent != b_path.parent

    @pytest.mark.asyncio
    async def test_cleanup_on_error(self, provisioner):
        with pytest.raises(RuntimeError):
            async with provisioner.location("a") as path:
                directory = path.parent
                raise RuntimeError("fail")
        assert not directory.exists()

    @pytest.mark.asyncio
    async def test_base_dir_unusable_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        provisioner = StoreProvisioner(base_dir=blocker / "sub")
        with pytest.raises(ProvisioningError):
            async with provisioner.location("a"):
                pass

    @pytest.mark.asyncio
    async def test_open_store_closes_pool(self, provisioner):
        async with provisioner.open_store("a") as pool:
            assert pool.path.exists()
            directory = pool.path.parent
        assert pool.closed
        assert not directory.exists()

    @pytest.mark.asyncio
    async def test_open_store_tolerates_explicit_close(self, provisioner):
        async with provisioner.open_store("a") as pool:
            await pool.close()
        assert pool.closed
