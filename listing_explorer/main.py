from fastapi import FastAPI
from .api.routes import router as api_router
from .db import ensure_schema
from .scheduler import start_scheduler, shutdown_scheduler
from .utils import logger
from . import models  # noqa: F401 ensure models are imported so tables are known

app = FastAPI(title="Listing Explorer API")
app.include_router(api_router)


@app.on_event("startup")
def on_startup():
    # schema may be owned by migrations
    try:
        ensure_schema()
    except Exception as e:
        logger.error("Schema setup skipped: %s", e)
    start_scheduler()


@app.on_event("shutdown")
def on_shutdown():
    shutdown_scheduler()
