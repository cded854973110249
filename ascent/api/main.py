"""
ascent.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn ascent.api.main:app --port 8000
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from ascent import __version__  # noqa: E402
from ascent.api.deps import get_cache, get_engine, get_live_hub, get_relay  # noqa: E402
from ascent.api.routes.events import router as events_router  # noqa: E402
from ascent.api.routes.projects import router as projects_router  # noqa: E402
from ascent.database.engine import init_db, run_db  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: create tables, warm the cache, start the journal relay."""
    engine = get_engine()
    await run_db(init_db, engine)
    await run_db(get_cache)
    get_live_hub().bind(asyncio.get_running_loop())
    relay = get_relay()
    await run_db(relay.skip_to_latest)
    relay_task = asyncio.create_task(relay.run())
    logger.info("Ascent API started — engine ready (%s)", engine.url.database)
    yield
    relay_task.cancel()
    with suppress(asyncio.CancelledError):
        await relay_task
    logger.info("Ascent API shutting down")


app = FastAPI(
    title="Ascent Progression API",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(events_router, prefix="/api")
app.include_router(projects_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
