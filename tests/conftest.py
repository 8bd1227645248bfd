"""
Pytest configuration and shared fixtures.

Sets a consistent random seed before each test for reproducibility and
makes sure every test sees freshly loaded config.
"""
import pytest

from onpolicy import config
from onpolicy.utils.device import reset_device_cache
from onpolicy.utils.seed import set_seed


@pytest.fixture(autouse=True)
def seed_tests():
    """Set a consistent seed before each test for reproducibility."""
    set_seed(42)
    yield


@pytest.fixture(autouse=True)
def reset_config(monkeypatch):
    """Reset config and device caches before each test."""
    monkeypatch.delenv("ONPOLICY_DEVICE", raising=False)
    config._config = None
    config._config_path = None
    reset_device_cache()
    yield
    config._config = None
    config._config_path = None
    reset_device_cache()
