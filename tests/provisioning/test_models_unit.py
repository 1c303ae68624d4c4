"""Unit tests for ProvisionSpec validation and the error taxonomy."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.provisioning.provisioner.errors import (
    CleanupWarning,
    FetchError,
    InstallError,
    ProvisionError,
    WorkspaceError,
)
from src.provisioning.provisioner.models import ProvisionReport, ProvisionSpec


def _spec(**overrides):
    values = {
        "source_url": "https://example.test/tools.git",
        "local_clone_name": "tools",
        "sub_tool_paths": ["a", "b"],
        "workspace_root": "/tmp/prov",
    }
    values.update(overrides)
    return ProvisionSpec(**values)


class TestProvisionSpec:

    def test_clone_path_joins_root_and_name(self):
        assert _spec().clone_path == Path("/tmp/prov/tools")

    def test_sub_tool_order_is_preserved(self):
        assert _spec(sub_tool_paths=["z", "a", "m"]).sub_tool_paths == ("z", "a", "m")

    def test_clone_name_is_stripped(self):
        spec = _spec(local_clone_name=" tools ")
        assert spec.local_clone_name == "tools"
        assert spec.clone_path.name == "tools"

    def test_spec_is_immutable(self):
        spec = _spec()
        with pytest.raises(ValidationError):
            spec.source_url = "https://elsewhere.test/x.git"

    def test_blank_revision_is_unpinned(self):
        assert _spec(revision="  ").revision is None
        assert _spec(revision="  ").is_pinned is False
        assert _spec(revision="abc123").is_pinned is True

    @pytest.mark.parametrize("name", ["a/b", "..", ".", "", " ", "\t", " .. "])
    def test_rejects_unsafe_clone_names(self, name):
        with pytest.raises(ValidationError):
            _spec(local_clone_name=name)

    @pytest.mark.parametrize("tool_path", ["/abs/tool", "../escape", "a/../../b", " "])
    def test_rejects_sub_tool_paths_outside_clone(self, tool_path):
        with pytest.raises(ValidationError):
            _spec(sub_tool_paths=[tool_path])

    def test_accepts_nested_sub_tool_path(self):
        assert _spec(sub_tool_paths=["tools/fuzz-a"]).sub_tool_paths == ("tools/fuzz-a",)

    def test_rejects_relative_workspace_root(self):
        with pytest.raises(ValidationError, match="absolute"):
            _spec(workspace_root="relative/prov")

    def test_rejects_blank_source_url(self):
        with pytest.raises(ValidationError):
            _spec(source_url="   ")


class TestErrors:

    def test_exit_codes_distinguish_failure_classes(self):
        codes = {
            FetchError("u", "m").exit_code,
            InstallError("a", "m").exit_code,
            CleanupWarning(Path("/tmp/x"), "m").exit_code,
        }
        assert len(codes) == 3

    def test_workspace_error_is_fetch_class(self):
        assert WorkspaceError("m").exit_code == FetchError("u", "m").exit_code

    def test_install_error_identifies_path(self):
        error = InstallError("fuzz-a", "exit 101")
        assert isinstance(error, ProvisionError)
        assert error.path == "fuzz-a"
        assert error.step == "install"
        assert "fuzz-a" in str(error)
        assert error.cleanup_warning is None

    def test_cleanup_warning_is_a_warning(self):
        assert issubclass(CleanupWarning, UserWarning)
        assert not issubclass(CleanupWarning, ProvisionError)


class TestProvisionReport:

    def test_clean_without_warning(self):
        assert ProvisionReport(fetched=True).clean is True

    def test_not_clean_with_warning(self):
        report = ProvisionReport(
            fetched=True, cleanup_warning=CleanupWarning(Path("/tmp/x"), "busy"))
        assert report.clean is False
