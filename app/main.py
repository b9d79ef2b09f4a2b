from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import logging

from app.api.routes import router
from app.config import settings_from_env
from app.core.context import build_context
from app.core.errors import StorageError
from app.infra.redis_client import create_redis

settings = settings_from_env()

app = FastAPI(title="banana-game", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@app.exception_handler(StorageError)
async def _storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage unavailable while handling %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "Storage unavailable"})


@app.on_event("startup")
async def _startup() -> None:
    # Tests install their own context before the client starts.
    if getattr(app.state, "ctx", None) is None:
        app.state.ctx = build_context(r=create_redis(settings.redis_url), settings=settings)
        logger.info("Game context initialized")


@app.on_event("shutdown")
async def _shutdown() -> None:
    ctx = getattr(app.state, "ctx", None)
    if ctx is not None:
        # Let in-flight score saves finish.
        await ctx.aclose()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "banana-game", "version": "0.1.0"}
