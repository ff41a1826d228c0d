"""Shared pytest fixtures for reclink tests."""

import pytest

from fixtures.records import ARCHIVE, CRM, LEGACY, PEOPLE, make_config
from reclink.config import get_settings
from reclink.datasets import InMemoryCatalog


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop cached settings so environment changes do not leak between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def catalog() -> InMemoryCatalog:
    """Catalog with the people source and every reference dataset."""
    return InMemoryCatalog({
        "people": PEOPLE,
        "crm": CRM,
        "archive": ARCHIVE,
        "legacy": LEGACY,
    })


@pytest.fixture
def config():
    """People matched against the CRM with the scenario rules."""
    return make_config()
