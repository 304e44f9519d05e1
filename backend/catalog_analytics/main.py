from fastapi import FastAPI
import logging
import os
from datetime import datetime

from catalog_analytics.core.config import settings
from catalog_analytics.routers import jobs
from catalog_analytics.database import init_db
from catalog_analytics.scheduler import create_job_registry, initialize_jobs, stop_jobs

# ----------------------------
# Logging
# ----------------------------
logger = logging.getLogger("catalog_analytics")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Server fingerprint for debugging
SERVER_BOOT_ID = f"catalog-analytics::{os.getpid()}::{datetime.utcnow().isoformat()}"

app = FastAPI(debug=settings.DEBUG)

# The process owns exactly one registry; routers reach it through app.state
app.state.job_registry = create_job_registry(settings)


# ----------------------------
# Routers
# ----------------------------
app.include_router(jobs.router, prefix="/admin")


@app.on_event("startup")
def on_startup() -> None:
    logger.info("[BOOT] %s", SERVER_BOOT_ID)
    init_db()
    initialize_jobs(app.state.job_registry, config=settings)


@app.on_event("shutdown")
def on_shutdown() -> None:
    stop_jobs(app.state.job_registry)


@app.get("/health")
def health_check():
    return {"status": "ok"}
