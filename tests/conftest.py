# tests/conftest.py
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from taskmanager.config import Settings
from taskmanager.database import TaskStore
from taskmanager.main import create_app


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    # no simulated latency, so bulk tests stay fast
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'tasks.db'}",
        db_pool_size=5,
        bulk_max_delay_ms=0,
    )


@pytest.fixture()
def store(settings: Settings):
    s = TaskStore.from_settings(settings)
    s.open()
    yield s
    s.close()


@pytest.fixture()
def client(settings: Settings, store: TaskStore):
    with TestClient(create_app(settings, store=store)) as c:
        yield c
