"""
Pytest Configuration and Global Fixtures.

This file is automatically loaded by pytest and provides:
- Shared fixtures available to all tests
- Pytest markers configuration
"""

import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Ensure the project root is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# Re-export fixtures from helpers module
# =============================================================================

from tests.helpers.fixtures import (
    FakePostgrest,
    FakeRemote,
    RemoteFactory,
    VaultContext,
    build_media,
    build_profile,
    local_config,
    remote_config,
)


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# =============================================================================
# Function-Scoped Fixtures
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test isolation."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def vault_context() -> Generator[VaultContext, None, None]:
    """Create an isolated FamilyVault root with captioning disabled."""
    with VaultContext() as ctx:
        yield ctx


@pytest.fixture
def fake_remote() -> FakeRemote:
    """Create an empty in-memory remote catalog."""
    return FakeRemote()


@pytest.fixture
def anna():
    """A standard profile."""
    return build_profile()
