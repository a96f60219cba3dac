import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cardauth.core.config import get_settings
from cardauth.core.database import get_session_factory, init_db
from cardauth.core.executor import shutdown_executor
from cardauth.core.logging import get_logger, setup_logging
from cardauth.core.rate_limiter import custom_rate_limit_handler, limiter
from cardauth.core.schemas import BaseResponse
from cardauth.routes import webhooks, websocket

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_format)
    if not settings.is_production:
        # Production schemas are managed by migrations
        init_db()
    logger.info("Card authorization service started (env=%s)", settings.app_env)
    yield
    shutdown_executor()
    logger.info("Card authorization service stopped")


app = FastAPI(
    title="Card Authorization Engine",
    version="1.0.0",
    description="Real-time authorization and spend controls for virtual cards",
    lifespan=lifespan,
    responses={
        code: {"model": BaseResponse} for code in (400, 401, 403, 422, 429)
    },
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

cors_origins = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",") if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)

app.include_router(webhooks.router, prefix="/api/v1/cards", tags=["Authorization"])
app.include_router(websocket.router, tags=["Notifications"])


@app.exception_handler(StarletteHTTPException)
async def envelope_http_exception(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error, including ``CustomHTTPException``, in the envelope."""
    if isinstance(exc.detail, dict):
        message = exc.detail.get("message", "An error occurred")
        data = exc.detail.get("data", {})
    else:
        message, data = str(exc.detail), {}
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s: %s", exc.status_code, request.url.path, message)
    return JSONResponse(
        status_code=exc.status_code,
        content=BaseResponse(
            success=False, message=message, data=data, status_code=exc.status_code
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.get("/health", tags=["System"], response_model=BaseResponse)
def health_check(session_factory=Depends(get_session_factory)):
    db = session_factory()
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        database = "unavailable"
    finally:
        db.close()

    healthy = database == "ok"
    code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(
        status_code=code,
        content=BaseResponse(
            success=healthy,
            message="System is healthy" if healthy else "System is degraded",
            data={"database": database, "environment": settings.app_env},
            status_code=code,
        ).model_dump(),
    )


@app.get("/", response_model=BaseResponse, tags=["System"])
async def root():
    return BaseResponse(
        success=True,
        message="Card Authorization Engine. Access /docs or /redoc for documentation.",
        data={"version": app.version, "authorize": "/api/v1/cards/authorize"},
        status_code=status.HTTP_200_OK,
    )


if __name__ == "__main__":
    uvicorn.run(
        "cardauth.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        workers=int(os.getenv("WORKERS", 1)),
        reload=os.getenv("RELOAD", "false").lower() == "true",
    )
