from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from .api import router as tasks_router
from .config import settings


def create_app() -> FastAPI:
    app = FastAPI(title="Task Reminder Service")
    app.include_router(tasks_router, prefix="/api/v1/tasks", tags=["tasks"])
    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()
