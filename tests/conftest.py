from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from relay.core.config import Settings
from relay.db.session import configure_engine, dispose_engine
from relay.telemetry.storage import EventStore


@pytest.fixture(autouse=True)
def _reset_engine() -> Iterator[None]:
    yield
    dispose_engine()


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'relay.db'}"


@pytest.fixture()
def store(database_url: str) -> EventStore:
    configure_engine(database_url)
    event_store = EventStore()
    event_store.create_table()
    return event_store


@pytest.fixture()
def settings(database_url: str) -> Settings:
    return Settings(
        _env_file=None,
        database_url=database_url,
        project_id="proj-1",
        site_id="site-1",
        client_version="2.3.4",
        collect_endpoint="https://collect.test/collect",
        collect_enabled=False,
    )
