import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from ballot import config
from ballot.coins import router as coins_router
from ballot.database import engine
from ballot.log import configure_logging
from ballot.middleware import LoggingMiddleware
from ballot.migrate import run_migrations
from ballot.models import Base
from ballot.polls import router as polls_router
from ballot.redis_client import create_redis

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    redis = create_redis()
    app.state.redis = redis

    if config.RUN_MIGRATIONS:
        await asyncio.to_thread(run_migrations)
    elif config.AUTO_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    logger.info("app_started")
    yield
    await redis.aclose()
    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(title="ballot", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("constraint_violation", error=str(exc.orig))
    return JSONResponse(status_code=409, content={"detail": "Constraint violation"})


@app.get("/health")
async def health():
    return {"status": "ok"}


app.include_router(polls_router)
app.include_router(coins_router)
