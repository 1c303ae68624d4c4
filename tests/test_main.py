"""Tests for the toolprov command-line entry point.

The Provisioner is replaced with AsyncMocks so these tests cover
argument parsing, settings precedence and exit code mapping only.
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from src.provisioning import main as cli
from src.provisioning.provisioner.errors import (
    CleanupWarning,
    FetchError,
    InstallError,
)
from src.provisioning.provisioner.models import ProvisionReport


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("src.provisioning.main.configure_logging"):
        yield


@pytest.fixture
def base_args(tmp_path):
    return [
        "provision",
        "--source-url", "https://example.test/tools.git",
        "--sub-tool", "a",
        "--sub-tool", "b",
        "--workspace-root", str(tmp_path / "prov"),
    ]


def _patch_provision(**kwargs):
    return patch(
        "src.provisioning.main.Provisioner.provision", new_callable=AsyncMock, **kwargs)


class TestExitCodes:

    def test_success_returns_zero(self, base_args):
        report = ProvisionReport(fetched=True, installed=["a", "b"])
        with _patch_provision(return_value=report) as mock_provision:
            assert cli.main(base_args) == cli.EXIT_OK
        spec = mock_provision.call_args.args[0]
        assert spec.sub_tool_paths == ("a", "b")
        assert spec.local_clone_name == "tools"

    def test_fetch_error_returns_two(self, base_args):
        error = FetchError("https://example.test/tools.git", "not found")
        with _patch_provision(side_effect=error):
            assert cli.main(base_args) == 2

    def test_install_error_returns_three(self, base_args):
        with _patch_provision(side_effect=InstallError("a", "exit 101")):
            assert cli.main(base_args) == 3

    def test_install_error_with_cleanup_warning_keeps_install_code(self, base_args):
        error = InstallError("a", "exit 101")
        error.cleanup_warning = CleanupWarning(Path("/tmp/prov/tools"), "busy")
        with _patch_provision(side_effect=error):
            assert cli.main(base_args) == 3

    def test_cleanup_warning_only_returns_four(self, base_args):
        report = ProvisionReport(
            fetched=True, installed=["a", "b"],
            cleanup_warning=CleanupWarning(Path("/tmp/prov/tools"), "busy"))
        with _patch_provision(return_value=report):
            assert cli.main(base_args) == cli.EXIT_CLEANUP_WARNING

    def test_cancellation_returns_interrupted(self, base_args):
        with _patch_provision(side_effect=asyncio.CancelledError()):
            assert cli.main(base_args) == cli.EXIT_INTERRUPTED

    def test_missing_source_url_is_config_error(self, tmp_path, capsys):
        code = cli.main(["provision", "--workspace-root", str(tmp_path)])
        assert code == cli.EXIT_CONFIG_ERROR
        assert "Invalid configuration" in capsys.readouterr().err

    def test_invalid_sub_tool_is_config_error(self, base_args):
        assert cli.main(base_args + ["--sub-tool", "../escape"]) == cli.EXIT_CONFIG_ERROR

    def test_malformed_installer_string_is_config_error(self, base_args, capsys):
        code = cli.main(base_args + ["--installer", "cargo 'install"])
        assert code == cli.EXIT_CONFIG_ERROR
        assert "Invalid configuration" in capsys.readouterr().err

    def test_unparseable_list_environment_is_config_error(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROVISION_SUB_TOOLS", "a,b")
        code = cli.main([
            "provision",
            "--source-url", "https://example.test/tools.git",
            "--workspace-root", str(tmp_path / "prov"),
        ])
        assert code == cli.EXIT_CONFIG_ERROR

    def test_blank_clone_name_is_config_error(self, base_args):
        assert cli.main(base_args + ["--clone-name", " "]) == cli.EXIT_CONFIG_ERROR

    def test_cleanup_exit_code_matches_warning(self):
        assert cli.EXIT_CLEANUP_WARNING == CleanupWarning.exit_code == 4


class TestArguments:

    def test_subcommand_is_required(self):
        with pytest.raises(SystemExit):
            cli.main([])

    def test_installer_string_is_split(self, base_args):
        args = cli.build_parser().parse_args(
            base_args + ["--installer", "pip install --user", "--timeout", "90"])
        settings = cli.settings_from_args(args)
        assert settings.installer_command == ["pip", "install", "--user"]
        assert settings.step_timeout_seconds == 90.0

    def test_cli_overrides_environment(self, base_args, monkeypatch):
        monkeypatch.setenv("PROVISION_REVISION", "v1")
        args = cli.build_parser().parse_args(base_args + ["--revision", "v2"])
        assert cli.settings_from_args(args).revision == "v2"

    def test_environment_used_when_flag_absent(self, base_args, monkeypatch):
        monkeypatch.setenv("PROVISION_REVISION", "v1")
        args = cli.build_parser().parse_args(base_args)
        assert cli.settings_from_args(args).revision == "v1"


class TestMetricsPush:

    def test_pushes_when_gateway_configured(self, base_args):
        report = ProvisionReport(fetched=True, installed=["a", "b"])
        with _patch_provision(return_value=report), patch(
            "src.provisioning.main.ProvisionMetrics.push"
        ) as mock_push:
            cli.main(base_args + ["--metrics-gateway", "http://pushgateway:9091"])
        mock_push.assert_called_once_with("http://pushgateway:9091")

    def test_pushes_even_when_run_fails(self, base_args):
        with _patch_provision(side_effect=InstallError("a", "boom")), patch(
            "src.provisioning.main.ProvisionMetrics.push"
        ) as mock_push:
            cli.main(base_args + ["--metrics-gateway", "http://pushgateway:9091"])
        mock_push.assert_called_once()
