import uuid
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from vocalflow.api.deps import http_error, offline_mixer
from vocalflow.core import get_db
from vocalflow.core.errors import MixerError
from vocalflow.schemas.mix import MixdownOut, OfflineMixIn, OfflineMixOut
from vocalflow.services.mixdown_service import MixdownService

router = APIRouter()


@router.post("", response_model=OfflineMixOut)
async def create_mixdown(
    body: OfflineMixIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> OfflineMixOut:
    svc = MixdownService(db, offline_mixer(request))
    try:
        return await svc.create_mixdown(
            voice_url=body.voice_url,
            instrumental_url=body.instrumental_url,
            voice_gain=body.voice_gain,
            instrumental_gain=body.instrumental_gain,
        )
    except MixerError as e:
        raise http_error(e)


@router.get("/{asset_id}", response_model=MixdownOut)
async def get_mixdown(
    asset_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> MixdownOut:
    svc = MixdownService(db, offline_mixer(request))
    try:
        return await svc.get_mixdown(asset_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="mixdown not found")
