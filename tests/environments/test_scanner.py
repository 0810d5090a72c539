import pytest
from pathlib import Path

from mcp_toolchain_manager.environments.registry import Registry
from mcp_toolchain_manager.environments.scanner import (
    find_toolchain_markers,
    scan_local_environments,
)
from mcp_toolchain_manager.errors import DirectoryNotFound


def install_toolchain_tree(root: Path, version: str, west: bool = False) -> Path:
    toolchain_dir = root / version / "toolchain"
    (toolchain_dir / "ncsmgr").mkdir(parents=True)
    (toolchain_dir / "ncsmgr" / "manifest.env").write_text("")
    if west:
        (root / version / ".west").mkdir()
        (root / version / ".west" / "config").write_text("[manifest]\n")
    return toolchain_dir


def test_scan_detects_installed_toolchain(registry: Registry, install_dir: Path):
    """Test a marker file yields an installed record"""
    toolchain_dir = install_toolchain_tree(install_dir, "1.2.0")

    found = scan_local_environments(registry, install_dir)

    assert len(found) == 1
    record = registry.get("1.2.0")
    assert record.toolchain_dir == toolchain_dir
    assert record.is_installed
    assert record.is_west_present is False
    assert [t.version for t in record.toolchains] == ["1.2.0"]


def test_scan_detects_west_config(registry: Registry, install_dir: Path):
    install_toolchain_tree(install_dir, "1.3.0", west=True)
    scan_local_environments(registry, install_dir)
    assert registry.get("1.3.0").is_west_present is True


def test_scan_ignores_archives_and_incomplete_trees(registry: Registry, install_dir: Path):
    """Test zip entries and directories without a marker are skipped"""
    archive_dir = install_dir / "1.4.0" / "toolchain.zip" / "ncsmgr"
    archive_dir.mkdir(parents=True)
    (archive_dir / "manifest.env").write_text("")
    (install_dir / "1.5.0" / "toolchain").mkdir(parents=True)
    (install_dir / "downloads").mkdir()
    (install_dir / "downloads" / "a.zip").write_bytes(b"zip")

    assert find_toolchain_markers(install_dir) == []
    scan_local_environments(registry, install_dir)
    assert registry.snapshot() == []


def test_scan_skips_staging_directory(registry: Registry, install_dir: Path):
    install_toolchain_tree(install_dir, "toBeDeleted")
    scan_local_environments(registry, install_dir)
    assert registry.get("toBeDeleted") is None


def test_scan_merges_with_existing_record(registry: Registry, install_dir: Path):
    """Test rescans keep fields from the remote index"""
    registry.upsert({"version": "1.2.0", "toolchains": [{"version": "1", "name": "a.zip", "sha512": "H"}]})
    install_toolchain_tree(install_dir, "1.2.0")

    scan_local_environments(registry, install_dir)

    record = registry.get("1.2.0")
    assert record.is_installed
    assert {t.version for t in record.toolchains} == {"1", "1.2.0"}


def test_scan_missing_root(registry: Registry, tmp_path: Path):
    with pytest.raises(DirectoryNotFound):
        scan_local_environments(registry, tmp_path / "missing")
