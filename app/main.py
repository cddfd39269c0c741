from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.core.config import settings
from app.core.db import create_tables, engine
from app.services.importer import import_runner
from app.utils.exception_handlers import EXCEPTION_HANDLERS
from app.utils.router_discovery import register_routers


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncGenerator[None, FastAPI]:
    if settings.is_dev:
        logger.info("Development mode, creating missing tables")
        await create_tables()

    yield

    await import_runner.shutdown()
    await engine.dispose()


app = FastAPI(title="Gacha Import API", lifespan=app_lifespan)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


register_routers(app)

for exc_class, handler in EXCEPTION_HANDLERS:
    app.add_exception_handler(exc_class, handler)


@app.get("/")
async def healthz() -> str:
    return "OK"
