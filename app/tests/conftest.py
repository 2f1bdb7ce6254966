"""Shared pytest fixtures."""

import pytest

from infrastructure.services.providers import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Rebuild settings for every test so env overrides do not leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
