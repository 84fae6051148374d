"""Main FastAPI application for Palette."""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from palette.core.env_loader import ensure_env_loaded
ensure_env_loaded()

from palette import __version__
from palette.core.exceptions import (
    ConfigurationError,
    ContentError,
    InsufficientCreditsError,
    LLMError,
    PaletteError,
    ReferenceSetError,
    RunNotFoundError,
    UnitNotFoundError,
)
from palette.core.logging_config import get_logger
from palette.api.routers import runs, sse
from palette.api.settings import get_settings

logger = get_logger("api.main")

settings = get_settings()

app = FastAPI(
    title="Palette API",
    description="Shot breakdowns for stories and song lyrics",
    version=__version__,
)

app.state.limiter = runs.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Order matters: subclasses before their bases
_ERROR_STATUS = (
    (RunNotFoundError, 404),
    (UnitNotFoundError, 404),
    (InsufficientCreditsError, 402),
    (ConfigurationError, 503),
    (ReferenceSetError, 422),
    (ContentError, 422),
    (LLMError, 502),
)


@app.exception_handler(PaletteError)
async def palette_error_handler(request: Request, exc: PaletteError):
    """Map engine errors onto HTTP status codes."""
    status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__, "details": exc.details},
    )


app.include_router(sse.router, prefix="/api/runs", tags=["sse"])
app.include_router(runs.router, prefix="/api/runs", tags=["runs"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Palette API", "version": __version__}


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


def start_server(host: str = None, port: int = None, reload: bool = False):
    """Start the FastAPI server."""
    uvicorn.run(
        "palette.api.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",
    )


if __name__ == "__main__":
    start_server()
