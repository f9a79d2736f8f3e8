from unittest import mock

import pytest

from app import create_app
from store import LocationStore

PUBLIC_IP = "198.51.100.7"


@pytest.fixture
def store(tmp_path):
    store = LocationStore(str(tmp_path / "locations.db"))
    store.init()
    return store


@pytest.fixture
def ip_lookup():
    return mock.Mock(return_value=PUBLIC_IP)


@pytest.fixture
def make_app(tmp_path):
    def _make_app(**kwargs):
        config = {
            "TESTING": True,
            "DATABASE_FILE": str(tmp_path / "app.db"),
            "OPENCAGE_API_KEY": "",
            "ADMIN_USER": "admin",
            "ADMIN_PASS": "admin123",
        }
        config.update(kwargs.pop("config", {}))
        return create_app(config, **kwargs)
    return _make_app


@pytest.fixture
def app(make_app, store, ip_lookup):
    return make_app(store=store, ip_lookup=ip_lookup)


@pytest.fixture
def client(app):
    return app.test_client()
