from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from powgate.config import settings
from powgate.database import engine, init_db
from powgate.exceptions import ErrorKind, PowError
from powgate.logging_config import setup_logging
from powgate.middleware.logging import CORRELATION_HEADER, LoggingMiddleware
from powgate.middleware.rate_limit import limiter
from powgate.routers import challenges
from powgate.scheduler import shutdown_scheduler, start_scheduler

logger = structlog.get_logger()

ERROR_STATUS_CODES = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.FORMAT: 400,
    ErrorKind.SIGNATURE: 401,
    ErrorKind.CONTEXT_MISMATCH: 403,
    ErrorKind.REPLAY: 409,
    ErrorKind.EXPIRY: 410,
    ErrorKind.PROOF: 422,
    ErrorKind.EXHAUSTION: 422,
    ErrorKind.GENERATION: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and run the replay-record cleanup scheduler."""
    setup_logging()
    init_db(engine)
    start_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="powgate",
    description="Stateless signed proof-of-work challenges for abuse throttling",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Last added is outermost, so request logging wraps CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(PowError)
async def pow_error_handler(request: Request, exc: PowError):
    status_code = ERROR_STATUS_CODES.get(exc.kind, 400)
    if status_code >= 500:
        logger.error("pow_error", error=exc.kind.value, detail=str(exc))
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": exc.kind.value},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    # Responses from this handler bypass the middleware, so set the header here
    logger.error("unhandled_exception", error=str(exc), exc_info=exc)
    response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id:
        response.headers[CORRELATION_HEADER] = correlation_id
    return response


# Routers
app.include_router(challenges.router, prefix="/api/v1", tags=["challenges"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
