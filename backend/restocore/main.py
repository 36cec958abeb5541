"""FastAPI application entry point."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from restocore.api.routes import api_router
from restocore.core.config import settings
from restocore.core.exceptions import DomainError
from restocore.core.rate_limit import limiter
from restocore.core.security import decode_access_token
from restocore.db.base import Base
from restocore.db.session import SessionLocal, engine
from restocore.services.notification_service import manager as ws_manager
from restocore.services.notification_service import order_notifier

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    import json as _json
    import sys

    class JSONFormatter(logging.Formatter):
        def format(self, record):
            return _json.dumps({
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            })

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in ["/health", "/", "/docs", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {str(e)} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            raise

        process_time = time.time() - start_time
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"Response: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {process_time:.3f}s - Client: {client_ip}"
        )
        return response


def _ensure_sqlite_directory() -> None:
    database = engine.url.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting order and payment service")

    # Tables are created at startup for SQLite
    if settings.database_url.startswith("sqlite"):
        _ensure_sqlite_directory()
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created (SQLite mode)")

    # Sync routes run in the threadpool; notifications are scheduled back onto this loop
    order_notifier.bind_loop(asyncio.get_running_loop())

    yield

    order_notifier.bind_loop(None)
    logger.info("Shutting down order and payment service")


app = FastAPI(
    title="Restocore",
    description="Restaurant order lifecycle and payment reconciliation API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Render domain errors as ``{"detail", "error", "context"}`` with their HTTP status."""
    log_level = logging.WARNING if exc.status_code >= 409 else logging.INFO
    logger.log(log_level, f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - MUST be added last so it runs first (Starlette LIFO order).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,
)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Liveness and database check."""
    checks = {"database": "unknown", "websocket_manager": "unknown"}

    db = None
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"
    finally:
        if db:
            db.close()

    checks["websocket_manager"] = f"healthy ({ws_manager.get_connection_count()} connections)"

    return {
        "status": "healthy" if checks["database"] == "healthy" else "degraded",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


# ===== WebSocket =====

async def _authenticate_websocket(websocket: WebSocket, token: Optional[str], store_id: int) -> Optional[str]:
    """Return the staff user id, or close the socket with 1008 and return None.

    The token comes from the query string or the access_token cookie and must
    belong to the requested store.
    """
    payload = decode_access_token(token) if token else None
    if not payload:
        cookie_token = websocket.cookies.get("access_token")
        if cookie_token:
            payload = decode_access_token(cookie_token)

    if not payload or not payload.get("sub"):
        logger.warning(f"WebSocket rejected for store {store_id}: no valid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None

    if str(payload.get("store_id")) != str(store_id):
        logger.warning(f"WebSocket rejected for store {store_id}: token is for store {payload.get('store_id')}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None

    return str(payload["sub"])


@app.websocket("/ws/stores/{store_id}")
async def websocket_store(websocket: WebSocket, store_id: int, token: Optional[str] = Query(None)):
    """Order and payment events for one store. Requires a JWT for that store."""
    user_id = await _authenticate_websocket(websocket, token, store_id)
    if user_id is None:
        return

    await ws_manager.connect(websocket, store_id, user_id=user_id)
    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error for store {store_id}: {e}", exc_info=True)
        ws_manager.disconnect(websocket)
