# main.py
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from flcseek.config import configure_logging, settings
from flcseek.db import init_db
from flcseek.errors import AppError, RateLimited

# Domain routers
from flcseek.milestones.routes import router as milestones_router
from flcseek.progress.routes import router as progress_router
from flcseek.attendance.routes import router as attendance_router
from flcseek.people.routes import router as people_router
from flcseek.groups.routes import router as groups_router
from flcseek.users.routes import auth_router, router as users_router
from flcseek.exports.routes import router as export_router

configure_logging()
log = logging.getLogger("flcseek")

app = FastAPI(title="FLC Seek", version="1.0.0")


@app.on_event("startup")
def on_startup():
    if settings.AUTO_CREATE_TABLES:
        init_db()
        log.info("Database tables ensured")


# Healthcheck
@app.get("/healthz")
def healthcheck():
    return {"ok": True}


# ── Error handlers ────────────────────────────────────────────────────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    body = {"error": exc.message}
    if exc.details is not None:
        body["details"] = exc.details
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    log.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(status_code=409, content={"error": "Record conflicts with existing data"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(groups_router)
app.include_router(people_router)

# Discipleship tracking
app.include_router(milestones_router)
app.include_router(progress_router)
app.include_router(attendance_router)

app.include_router(export_router)
