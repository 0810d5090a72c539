import json
from pathlib import Path

import pytest

from mcp_toolchain_manager.config import (
    DEFAULT_INDEX_URL,
    Settings,
    is_first_install,
    load_settings,
    set_has_installed,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MCP_TOOLCHAIN_INSTALL_DIR", "MCP_TOOLCHAIN_INDEX_URL", "MCP_TOOLCHAIN_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


def test_load_settings_defaults(tmp_path: Path):
    settings = load_settings(tmp_path / "missing.json")

    assert settings.toolchain_index_url == DEFAULT_INDEX_URL
    assert settings.network_timeout == 60.0
    assert settings.install_dir == Path.home() / "ncs"


def test_load_settings_file_then_env(tmp_path: Path, monkeypatch):
    """Test environment variables win over the settings file"""
    config_file = tmp_path / "settings.json"
    config_file.write_text(
        json.dumps(
            {
                "install_dir": str(tmp_path / "sdk"),
                "toolchain_index_url": "https://mirror.example.com/toolchain/index.json",
                "network_timeout": 30,
            }
        )
    )
    monkeypatch.setenv("MCP_TOOLCHAIN_TIMEOUT", "12.5")

    settings = load_settings(config_file)

    assert settings.install_dir == tmp_path / "sdk"
    assert settings.toolchain_index_url == "https://mirror.example.com/toolchain/index.json"
    assert settings.network_timeout == 12.5


def test_load_settings_overrides(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("MCP_TOOLCHAIN_INSTALL_DIR", str(tmp_path / "env"))

    settings = load_settings(tmp_path / "missing.json", install_dir=tmp_path / "explicit")

    assert settings.install_dir == tmp_path / "explicit"


def test_load_settings_ignores_broken_file(tmp_path: Path):
    config_file = tmp_path / "settings.json"
    config_file.write_text("{not json")

    assert load_settings(config_file).toolchain_index_url == DEFAULT_INDEX_URL


def test_toolchain_url_and_downloads_dir(tmp_path: Path):
    settings = Settings(
        install_dir=tmp_path,
        toolchain_index_url="https://example.com/.pc-tools/toolchain/index.json",
    )

    assert (
        settings.toolchain_url("ncs-toolchain-1.2.0.zip")
        == "https://example.com/.pc-tools/toolchain/ncs-toolchain-1.2.0.zip"
    )
    assert settings.downloads_dir == tmp_path / "downloads"


def test_first_install_state(settings: Settings):
    """Test the first-install flag is persisted in the state file"""
    assert is_first_install(settings) is True

    set_has_installed(settings)

    assert is_first_install(settings) is False
    assert json.loads(settings.state_file.read_text()) == {"has_installed_an_ncs": True}
