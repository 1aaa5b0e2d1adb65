"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leadflow.core.config import get_settings
from leadflow.core.errors import DialerError
from leadflow.api.v1.routes import api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: validate provider settings, connect the notification outbox.
    Shutdown: close the outbox connection.
    """
    logger.info("Starting LeadFlow dialer...")

    settings = get_settings()
    strict_validation = settings.environment == "production"

    try:
        from leadflow.core.validation import validate_providers_on_startup
        validate_providers_on_startup(strict=strict_validation, settings=settings)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        logger.warning(f"Configuration warnings (non-fatal in {settings.environment}): {e}")

    from leadflow.api.v1.dependencies import get_outbox
    outbox = get_outbox()
    await outbox.initialize()

    logger.info("LeadFlow dialer started successfully")

    yield

    logger.info("Shutting down LeadFlow dialer...")
    try:
        await outbox.close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    logger.info("LeadFlow dialer shutdown complete")


app = FastAPI(
    title="LeadFlow Dialer",
    description="Outbound lead dialing with budget admission and revenue reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DialerError)
async def dialer_error_handler(request: Request, exc: DialerError) -> JSONResponse:
    """Map dialer errors onto `{"error": reason, "message": ...}` bodies."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.reason}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(api_router, prefix=get_settings().api_prefix)


@app.get("/")
async def root():
    return {"message": "LeadFlow Dialer API", "status": "running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
