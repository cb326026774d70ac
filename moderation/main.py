import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from moderation.database import AsyncSessionLocal
from moderation.dependencies.services import build_escalation_loop
from moderation.errors import ModerationError
from moderation.redis_client import close_redis, init_redis
from moderation.routers import admin, owner, public
from moderation.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.redis = await init_redis()
    escalation_loop = None
    if settings.ESCALATION_SCHEDULER_IN_PROCESS:
        escalation_loop = build_escalation_loop(app.state.redis)
        escalation_loop.start()
        logger.info("In-process escalation scheduler started")
    try:
        yield
    finally:
        if escalation_loop is not None:
            await escalation_loop.stop()
        await close_redis()


app = FastAPI(title="Event Moderation Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ModerationError)
async def moderation_error_handler(request: Request, exc: ModerationError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"] if part != "body")
        messages.append(f"{field}: {err['msg']}" if field else err["msg"])
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "; ".join(messages), "errorName": "ValidationError"},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "errorName": "InternalError"},
    )


app.include_router(public.router)
app.include_router(owner.router)
app.include_router(admin.router)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness probe - always returns 200 OK.
    """
    return {"status": "ok"}


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness probe - checks DB and Redis connectivity.
    Returns 200 if all dependencies are healthy, 503 otherwise.
    """
    errors = []

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        errors.append(f"Database: {str(e)}")

    try:
        redis = await init_redis()
        await redis.ping()
    except Exception as e:
        errors.append(f"Redis: {str(e)}")

    if errors:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "errors": errors},
        )

    return {"status": "ready", "database": "ok", "redis": "ok"}
