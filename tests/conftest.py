import os
from typing import Generator

import pytest

import httpx
from fastapi.testclient import TestClient

from mock_store.main import app as fastapi_app
from mock_store.database import reset_all
from storefront.core.config import Settings
from storefront.notifications import CollectingNotifier
from storefront.payments.gateway import INITIATION_GUARD
from storefront.storage import MemoryStorage


# Automatic marking by directory
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def _clean_state(monkeypatch):
    """Fresh mock databases, no stray env config, released payment guard"""
    for name in list(os.environ):
        if name.startswith("STOREFRONT_"):
            monkeypatch.delenv(name, raising=False)
    reset_all()
    INITIATION_GUARD._held = False
    yield
    reset_all()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        api_base_url="http://test/api",
        retry_delay=0.0,
        payment_poll_interval=0.01,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture(scope="session")
def app():
    return fastapi_app


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def asgi_client(app) -> httpx.AsyncClient:
    """httpx client routed straight into the mock store app"""
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
