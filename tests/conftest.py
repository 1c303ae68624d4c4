"""Pytest configuration for all tests."""

import os

import pytest


@pytest.fixture(autouse=True)
def clear_provision_env(monkeypatch):
    """Keep PROVISION_* variables from the host out of settings tests."""
    for name in list(os.environ):
        if name.upper().startswith("PROVISION_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sample_config_env(monkeypatch, tmp_path):
    """Set a complete provisioner configuration in the environment."""
    monkeypatch.setenv("PROVISION_SOURCE_URL", "https://example.test/fuzz-scripts.git")
    monkeypatch.setenv("PROVISION_REVISION", "v1.2.0")
    monkeypatch.setenv("PROVISION_SUB_TOOLS", '["cargo-fuzz-a", "cargo-fuzz-b"]')
    monkeypatch.setenv("PROVISION_WORKSPACE_ROOT", str(tmp_path / "prov"))
    monkeypatch.setenv("PROVISION_STEP_TIMEOUT_SECONDS", "600")
    return tmp_path / "prov"
