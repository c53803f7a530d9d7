from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from flashstats.api.errors import register_error_handlers
from flashstats.api.routes import api_router
from flashstats.config.logging_setup import configure_logging
from flashstats.config.settings import get_settings
from flashstats.db.base import init_db


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    load_dotenv()
    configure_logging(get_settings())
    init_db()
    yield


app = FastAPI(title=get_settings().app_name, lifespan=lifespan)
register_error_handlers(app)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Basic health endpoint."""
    return {"status": "ok"}


app.include_router(api_router)
