# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/conftest.py
"""Pytest configuration for image-sync tests."""

import pytest

from tests.fixtures.memory_fs import MemoryFilesystem


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-guestfs-tests",
        action="store_true",
        default=False,
        help="Run tests that launch the libguestfs appliance",
    )


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "guestfs_required: mark test as requiring libguestfs and its Python bindings",
    )


def pytest_collection_modifyitems(config, items):
    """Skip guestfs tests unless --run-guestfs-tests is passed."""
    if not config.getoption("--run-guestfs-tests"):
        skip_guestfs = pytest.mark.skip(
            reason="need --run-guestfs-tests option to run"
        )
        for item in items:
            if "guestfs_required" in item.keywords:
                item.add_marker(skip_guestfs)


@pytest.fixture
def memfs():
    """An empty in-memory partition with only the root directory."""
    return MemoryFilesystem()
