from __future__ import annotations

import logging
from time import monotonic

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.trustedhost import TrustedHostMiddleware

from easytasks.config import settings
from easytasks.db import ping_direct
from easytasks.deps import get_repository
from easytasks.errors import EasyTasksError
from easytasks.repositories.base import Repository
from easytasks.routers.auth import router as auth_router
from easytasks.routers.buckets import router as buckets_router
from easytasks.routers.dashboard import router as dashboard_router
from easytasks.routers.invitations import router as invitations_router
from easytasks.routers.organizations import router as organizations_router
from easytasks.routers.setup import router as setup_router
from easytasks.routers.tasks import router as tasks_router

logger = logging.getLogger("easytasks")


def configure_logging(level: str | None = None) -> None:
  logging.basicConfig(
    level=getattr(logging, (level or settings.log_level or "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
  )


configure_logging()

app = FastAPI(
  title="Easy Tasks API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(EasyTasksError)
async def _easytasks_error_handler(request: Request, exc: EasyTasksError) -> JSONResponse:
  if exc.status_code >= 500:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc.__cause__ or exc)
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def _database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
  logger.error("%s %s database error", request.method, request.url.path, exc_info=exc)
  return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(buckets_router)
app.include_router(tasks_router)
app.include_router(dashboard_router)
app.include_router(organizations_router)
app.include_router(invitations_router)
app.include_router(setup_router)


@app.middleware("http")
async def _request_log_middleware(request, call_next):
  start = monotonic()
  response = await call_next(request)
  elapsed_ms = (monotonic() - start) * 1000.0
  logger.debug("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/health/db")
async def health_db(repo: Repository = Depends(get_repository)) -> dict:
  try:
    await repo.ping()
  except (EasyTasksError, SQLAlchemyError) as exc:
    logger.warning("database health check failed: %s", exc)
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
  return {"ok": True, "storage": "local" if settings.is_local_mode() else "sql"}


@app.get("/health/db-direct")
async def health_db_direct() -> dict:
  if settings.is_local_mode():
    return {"ok": True, "storage": "local"}
  try:
    await ping_direct()
  except (OSError, SQLAlchemyError) as exc:
    logger.warning("direct database health check failed: %s", exc)
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Direct database connection failed")
  return {"ok": True, "direct": bool(settings.database_direct_url)}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version}


def _is_test_db() -> bool:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  return "test" in db_name


@app.on_event("startup")
async def _startup() -> None:
  if _is_test_db():
    return
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  logger.info("Easy Tasks API %s starting (storage=%s)", settings.app_version, settings.storage_backend)
