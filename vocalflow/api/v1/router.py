from fastapi import APIRouter
from vocalflow.api.v1 import mixes, notifications, pipelines, structure

router = APIRouter()
router.include_router(pipelines.router, prefix="/pipelines", tags=["pipelines"])
router.include_router(structure.router, prefix="/structure", tags=["structure"])
router.include_router(mixes.router, prefix="/mixes", tags=["mixes"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
