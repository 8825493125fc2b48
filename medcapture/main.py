import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from medcapture.config import Settings
from medcapture.routers import health_records, medical_data

settings = Settings.from_env()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting medcapture...")
    app.state.settings = settings
    logger.info("Record store backend: %s", settings.store_backend)
    yield
    store = getattr(app.state, "record_store", None)
    if store is not None:
        await store.close()
    logger.info("medcapture shut down")


app = FastAPI(
    title="medcapture",
    description="AI extraction of medical facts into OpenEHR compositions",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(medical_data.router)
app.include_router(health_records.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
