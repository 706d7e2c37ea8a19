"""FastAPI application for the study scheduling engine."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from study_scheduler.api.routes.availability import router as availability_router
from study_scheduler.api.routes.planned_tasks import router as planned_tasks_router
from study_scheduler.api.routes.suggestions import router as suggestions_router
from study_scheduler.core.config import settings
from study_scheduler.core.logging import configure_logging
from study_scheduler.core.middleware import RequestIDMiddleware
from study_scheduler.observability.client import init_opik
from study_scheduler.observability.tracing import trace

configure_logging(log_level=settings.log_level)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_opik()
    yield


app = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.debug, lifespan=lifespan)
app.add_middleware(RequestIDMiddleware)
app.include_router(availability_router)
app.include_router(suggestions_router)
app.include_router(planned_tasks_router)


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
