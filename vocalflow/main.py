from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from pathlib import Path
import logging

from vocalflow.api.v1.router import router as v1_router
from vocalflow.core import settings
from vocalflow.core.db import AsyncSessionLocal
from vocalflow.jobs.functions import FunctionsClient, MediaFetcher
from vocalflow.renderers.offline_mixer import OfflineMixer
from vocalflow.runtime.pipelines import PipelineRegistry

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)

app = FastAPI(title="vocalflow API", version="0.1.0")
app.include_router(v1_router, prefix="/v1")

app.state.functions = FunctionsClient()
app.state.mixer = OfflineMixer(MediaFetcher())
app.state.pipelines = PipelineRegistry(AsyncSessionLocal)

Path(settings.STORAGE_DIR).mkdir(parents=True, exist_ok=True)
app.mount(settings.STORAGE_BASE_URL, StaticFiles(directory=settings.STORAGE_DIR), name="storage")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "env": settings.ENV}


@app.on_event("shutdown")
async def shutdown_event():
    """Abort in-flight pipeline runs and let them record their jobs."""
    await app.state.pipelines.shutdown()
