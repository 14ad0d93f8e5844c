from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from vocalflow.renderers.offline_mixer import OfflineMixer
from vocalflow.repos.audio_asset_repo import AudioAssetRepo
from vocalflow.schemas.mix import MixdownOut, OfflineMixOut
from vocalflow.services.storage_service import StorageService


class MixdownService:
    def __init__(self, db: AsyncSession, mixer: OfflineMixer, storage: StorageService | None = None):
        self.db = db
        self.assets = AudioAssetRepo(db)
        self.mixer = mixer
        self.storage = storage or StorageService()

    async def create_mixdown(
        self,
        *,
        voice_url: str,
        instrumental_url: str,
        voice_gain: float | None = None,
        instrumental_gain: float | None = None,
    ) -> OfflineMixOut:
        # render before opening the transaction; nothing is stored for a failed mix
        result = await self.mixer.render(voice_url, instrumental_url, voice_gain, instrumental_gain)

        async with self.db.begin():
            stored = await self.storage.save_bytes(
                result.audio_bytes,
                kind="mix",
                mime=result.mime,
                ext=".wav",
            )
            asset = await self.assets.create(
                kind="mix",
                storage_url=stored.url,
                mime=stored.mime,
                duration_ms=result.length_ms,
            )

        return OfflineMixOut(
            asset_id=str(asset.id),
            audio_url=stored.url,
            mime=stored.mime,
            length_ms=result.length_ms,
            sample_rate=result.sample_rate,
            channels=result.channels,
        )

    async def get_mixdown(self, asset_id: uuid.UUID) -> MixdownOut:
        asset = await self.assets.get(asset_id)
        if asset is None or asset.kind != "mix":
            raise KeyError("mixdown not found")
        return MixdownOut(
            asset_id=str(asset.id),
            audio_url=asset.storage_url,
            mime=asset.mime,
            length_ms=asset.duration_ms,
            created_at=asset.created_at,
        )
