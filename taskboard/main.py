import logging
from importlib.metadata import version, PackageNotFoundError

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from taskboard.database import Base, engine
from taskboard.models import task as _task_models, user as _user_models  # noqa: F401  register tables
from taskboard.routers import auth, tasks
from taskboard.schemas.task import field_errors
from taskboard.services.events import EventBus
from taskboard.utils.errors import TaskboardError
from taskboard.utils.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Taskboard API")

# One bus per application; tests may override the get_event_bus dependency
app.state.event_bus = EventBus()

# API routers
app.include_router(auth.router)
app.include_router(tasks.router)


@app.get("/api/health")
def health():
    return {"status": "OK", "message": "Server is running"}


@app.get("/api/version")
def get_version():
    try:
        return {"version": version("taskboard-api")}
    except PackageNotFoundError:
        return {"version": "unknown"}


@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"kind": "ValidationFailure", "detail": "Validation failed", "errors": field_errors(exc)},
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Storage error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"kind": "StorageFailure", "detail": "Storage error"})


# Generic error handler to return JSON errors for unexpected exceptions
@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"kind": "InternalError", "detail": "Internal server error"})
