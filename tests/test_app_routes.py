"""Regression tests for application route registration."""
from fastapi.routing import APIRoute

from study_scheduler.main import app


def _routes(path: str, method: str) -> list[APIRoute]:
    return [
        route
        for route in app.routes
        if isinstance(route, APIRoute) and route.path == path and method in route.methods
    ]


def test_schedule_routes_registered_once() -> None:
    assert len(_routes("/schedule/generate", "POST")) == 1
    assert len(_routes("/schedule/suggestions", "GET")) == 1
    assert len(_routes("/schedule/suggestions/resolve", "POST")) == 1
    assert len(_routes("/schedule/availability", "PUT")) == 1
    assert len(_routes("/schedule/availability/{block_id}", "PATCH")) == 1
    assert len(_routes("/planned-tasks/{task_id}", "PATCH")) == 1
