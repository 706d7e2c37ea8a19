from __future__ import annotations

import importlib
import os
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from study_scheduler.db import Base
from study_scheduler.db.deps import get_db
from study_scheduler.observability import client as client_module


class _DummyTrace:
    def __init__(self, metadata=None, **kwargs):
        self.metadata = metadata or {}

    def update(self, metadata=None, **kwargs):
        if metadata:
            self.metadata = metadata

    def end(self):
        pass


class _DummyOpik:
    def __init__(self, *args, **kwargs):
        self.traces = []

    def trace(self, **kwargs):
        trace = _DummyTrace(metadata=kwargs.get("metadata"))
        self.traces.append(trace)
        return trace


@pytest.fixture()
def sqlite_override():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover - sqlite setup
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    return override_get_db


@pytest.mark.skipif("OPIK_API_KEY" not in os.environ, reason="OPIK_API_KEY env var required for Opik tests")
def test_app_runs_with_opik_enabled(monkeypatch, sqlite_override):
    api_key = os.environ["OPIK_API_KEY"]
    monkeypatch.setenv("OPIK_ENABLED", "true")
    monkeypatch.setenv("OPIK_PROJECT", "study-scheduler-test")
    monkeypatch.setenv("OPIK_API_KEY", api_key)

    import study_scheduler.core.config as config_module
    import study_scheduler.main as main_module

    importlib.reload(config_module)
    importlib.reload(client_module)
    monkeypatch.setattr(client_module, "Opik", _DummyOpik)
    client_module.reset_opik_client()
    reloaded_main = importlib.reload(main_module)

    reloaded_main.app.dependency_overrides[get_db] = sqlite_override

    with TestClient(reloaded_main.app) as test_client:
        assert test_client.get("/health").status_code == 200
        resp = test_client.post(
            "/schedule/availability",
            json={"day_of_week": 2, "available_start": "15:00", "available_end": "17:00"},
            headers={"X-User-Id": str(uuid4())},
        )
        assert resp.status_code == 201

    reloaded_main.app.dependency_overrides.clear()

    monkeypatch.setenv("OPIK_ENABLED", "false")
    importlib.reload(config_module)
    importlib.reload(client_module)
    client_module.reset_opik_client()
    importlib.reload(main_module)
