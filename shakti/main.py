# main.py
import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from contextlib import asynccontextmanager

from shakti.config import LOG_LEVEL, ENABLE_TEST_ENDPOINTS
from shakti.database import database
from shakti.routers import (
    sos,
    trusted_contacts,
    user,
    notifications,
    ping,
)
# Registers every table on Base.metadata before create_all
from shakti.models import models  # noqa: F401
from shakti.utils.notifier import NotificationHub

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------- Lifespan context ----------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles startup and shutdown events.
    Creates all tables on startup, builds the shared notification clients
    and logs the registered routes.
    """
    # Create all tables
    database.Base.metadata.create_all(bind=database.engine)

    # One set of SMS / email / Firebase clients for the whole process
    app.state.notification_hub = NotificationHub.from_config(session_factory=database.SessionLocal)

    logger.info("📌 ROUTES REGISTERED:")
    for route in app.routes:
        if isinstance(route, APIRoute):
            methods = ",".join(sorted(route.methods))
            logger.info("%-10s -> %s", methods, route.path)

    yield


# ---------------- FastAPI instance ----------------
app = FastAPI(title="Navi Shakti Shield", lifespan=lifespan)


# ---------------- Error handlers ----------------
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Validation failures are client errors: 400 with one entry per bad field."""
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


# ---------------- Include routers ----------------
app.include_router(ping.router)
app.include_router(user.router)
app.include_router(trusted_contacts.router)
app.include_router(sos.router)
if ENABLE_TEST_ENDPOINTS:
    app.include_router(notifications.router)
