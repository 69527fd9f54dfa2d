"""Shared test fixtures for Basket Sync."""

import asyncio

import pytest

from basket_sync.change_bus import ChangeBus
from basket_sync.fake_database import FakeDatabase
from basket_sync.mutation_queue import MutationQueue
from basket_sync.storage import JSONFileStorage, MemoryStorage


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary data directory."""
    data_dir = tmp_path / "test_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def memory_storage():
    """Create empty in-memory key-value storage."""
    return MemoryStorage()


@pytest.fixture
def file_storage(temp_data_dir):
    """Create JSON file storage in a temporary directory."""
    return JSONFileStorage(data_dir=temp_data_dir)


@pytest.fixture
def queue(memory_storage):
    """Create a mutation queue over in-memory storage."""
    return MutationQueue(memory_storage)


@pytest.fixture
def change_bus():
    """Create a change bus."""
    return ChangeBus()


@pytest.fixture
def fake_db(change_bus):
    """Create an initialized, empty FakeDatabase."""
    db = FakeDatabase(change_bus=change_bus)
    asyncio.run(db.initialize())
    return db


@pytest.fixture
def store(fake_db):
    """Create a store in the fake database."""
    return asyncio.run(fake_db.insert_store("Giant Food"))


@pytest.fixture
def config_file(tmp_path):
    """Create a config file using in-memory storage and the fake database."""
    config_path = tmp_path / "basket-sync.toml"
    config_path.write_text(f"""
[api]
base_url = "http://127.0.0.1:9"
timeout_seconds = 2

[database]
type = "fake"

[storage]
backend = "json"
storage_dir = "{(tmp_path / "data").as_posix()}"

[queue]
max_retry_count = 3

[logging]
level = "ERROR"
""")
    return config_path
