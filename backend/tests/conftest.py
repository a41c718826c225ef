"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from app.config import AppConfig, AdminSettings, StoreSettings, set_config
from app.main import app
from app.store.service import ChatStore


@pytest.fixture
def chat_config():
    """In-memory store, one configured admin, a second public room."""
    config = AppConfig(
        store=StoreSettings(db_path=":memory:"),
        admin=AdminSettings(usernames=["admin"]),
    )
    config.chat.public_rooms = ["general", "random"]
    return config


@pytest.fixture
def client(chat_config):
    """Provide a TestClient with the lifespan running.

    Entering the client as a context manager runs startup/shutdown and makes
    every HTTP call and WebSocket share one event loop, which the connection
    manager relies on.
    """
    ChatStore.reset_instance()
    set_config(chat_config)
    with TestClient(app) as test_client:
        yield test_client
    set_config(None)
    ChatStore.reset_instance()


@pytest.fixture
def store(client):
    """The ChatStore behind the running app."""
    return client.app.state.gateway.store


@pytest.fixture
def manager(client):
    """The ConnectionManager behind the running app."""
    return client.app.state.manager
