"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskdesk.core.config import settings
from taskdesk.core.middleware import setup_middleware
from taskdesk.core.exceptions import HTTP_STATUS_BY_KIND, TaskdeskError
from taskdesk.db.session import init_db

from taskdesk.api.teams import router as teams_router
from taskdesk.api.members import router as members_router
from taskdesk.api.workflow_states import router as workflow_states_router
from taskdesk.api.labels import router as labels_router
from taskdesk.api.projects import router as projects_router
from taskdesk.api.issues import router as issues_router
from taskdesk.api.invitations import router as invitations_router, public_router as public_invitations_router
from taskdesk.api.chat import router as chat_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("taskdesk")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s API", settings.APP_NAME)
    try:
        init_db()
        logger.info("Database tables ready")
    except Exception as e:
        logger.warning(f"Database not available: {e}")

    yield

    logger.info("Shutting down %s API", settings.APP_NAME)


app = FastAPI(
    title="Taskdesk API",
    description="Team issue tracker with a conversational assistant",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


# Exception handler for domain errors
@app.exception_handler(TaskdeskError)
async def taskdesk_exception_handler(request: Request, exc: TaskdeskError):
    content = {"detail": exc.message, "errorKind": exc.kind}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    candidates = getattr(exc, "candidates", None)
    if candidates:
        content["candidates"] = candidates
    correlation_id = getattr(exc, "correlation_id", None)
    if correlation_id:
        content["correlationId"] = correlation_id
    return JSONResponse(status_code=HTTP_STATUS_BY_KIND.get(exc.kind, 400), content=content)


# Register routers
app.include_router(teams_router, prefix="/api")
app.include_router(members_router, prefix="/api")
app.include_router(workflow_states_router, prefix="/api")
app.include_router(labels_router, prefix="/api")
app.include_router(projects_router, prefix="/api")
app.include_router(issues_router, prefix="/api")
app.include_router(invitations_router, prefix="/api")
app.include_router(public_invitations_router, prefix="/api")
app.include_router(chat_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
