"""Unit tests for the workspace manager.

Tests workspace root creation, detection of an existing clone, and
removal on normal and exceptional exits.
"""

import asyncio
from unittest.mock import patch

import pytest

from src.provisioning.provisioner.errors import CleanupWarning, WorkspaceError
from src.provisioning.provisioner.models import ProvisionSpec, WorkspaceHandle
from src.provisioning.provisioner.workspace import (
    WORKSPACE_ROOT_PERMISSIONS,
    WorkspaceManager,
)


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def manager():
    return WorkspaceManager()


@pytest.fixture
def spec(tmp_path):
    return ProvisionSpec(
        source_url="https://example.test/tools.git",
        local_clone_name="tools",
        sub_tool_paths=["a"],
        workspace_root=tmp_path / "nested" / "prov",
    )


class TestAcquire:

    def test_creates_workspace_root_with_permissions(self, manager, spec):
        handle = manager.acquire(spec)
        assert spec.workspace_root.is_dir()
        assert spec.workspace_root.stat().st_mode & 0o777 == WORKSPACE_ROOT_PERMISSIONS
        assert handle.path == spec.clone_path
        assert handle.preexisting is False

    def test_detects_existing_clone(self, manager, spec):
        spec.clone_path.mkdir(parents=True)
        handle = manager.acquire(spec)
        assert handle.preexisting is True

    def test_existing_root_permissions_untouched(self, manager, spec):
        spec.workspace_root.mkdir(parents=True, mode=0o700)
        spec.workspace_root.chmod(0o700)
        manager.acquire(spec)
        assert spec.workspace_root.stat().st_mode & 0o777 == 0o700

    def test_uncreatable_root_raises(self, manager, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        spec = ProvisionSpec(
            source_url="https://example.test/tools.git", local_clone_name="tools",
            workspace_root=blocker / "prov")
        with pytest.raises(WorkspaceError, match="Failed to create workspace root"):
            manager.acquire(spec)


class TestRelease:

    def test_removes_directory_tree(self, manager, tmp_path):
        path = tmp_path / "tools"
        (path / "sub" / "deep").mkdir(parents=True)
        (path / "sub" / "deep" / "file.rs").write_text("fn main() {}")
        handle = WorkspaceHandle(path=path)
        assert manager.release(handle) is None
        assert not path.exists()
        assert handle.released is True

    def test_missing_directory_is_not_an_error(self, manager, tmp_path):
        handle = WorkspaceHandle(path=tmp_path / "never-created")
        assert manager.release(handle) is None

    def test_rmtree_failure_returns_warning(self, manager, tmp_path):
        path = tmp_path / "tools"
        path.mkdir()
        with patch(
            "src.provisioning.provisioner.workspace.shutil.rmtree",
            side_effect=PermissionError("denied"),
        ):
            warning = manager.release(WorkspaceHandle(path=path))
        assert isinstance(warning, CleanupWarning)
        assert warning.path == path
        assert "denied" in warning.cause


class TestScoped:

    def test_removes_workspace_after_block(self, manager, spec):

        async def scenario():
            async with manager.scoped(spec) as handle:
                handle.path.mkdir()
            return handle

        handle = run_async(scenario())
        assert handle.released is True
        assert handle.cleanup_warning is None
        assert not spec.clone_path.exists()

    def test_removes_workspace_when_block_raises(self, manager, spec):

        async def scenario():
            async with manager.scoped(spec) as handle:
                handle.path.mkdir()
                raise RuntimeError("install exploded")

        with pytest.raises(RuntimeError, match="install exploded"):
            run_async(scenario())
        assert not spec.clone_path.exists()

    def test_removes_workspace_when_cancelled(self, manager, spec):

        async def scenario():
            async with manager.scoped(spec) as handle:
                handle.path.mkdir()
                await asyncio.sleep(3600)

        async def cancel_soon():
            task = asyncio.create_task(scenario())
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            run_async(cancel_soon())
        assert not spec.clone_path.exists()
