from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional

from vocalflow.core import settings

Kind = Literal["recording", "job_output", "mix"]


@dataclass(frozen=True)
class StoredObject:
    """
    key: relative path under STORAGE_DIR (e.g. "mix/2026/02/02/<uuid>.wav")
    abs_path: absolute filesystem path to the stored file
    url: public URL path (e.g. "/storage/mix/2026/02/02/<uuid>.wav")
    mime: MIME type stored alongside the asset row
    """
    key: str
    abs_path: str
    url: str
    mime: str


class StorageService:
    """
    Local filesystem storage for rendered audio.

    Keys are generated here, never taken from the caller, and every write
    goes to a tmp file first and is moved into place with os.replace.
    """

    def __init__(
        self,
        storage_dir: str | Path | None = None,
        base_url: str | None = None,
    ):
        self.storage_dir = Path(storage_dir or settings.STORAGE_DIR)
        self.base_url = (base_url or settings.STORAGE_BASE_URL).rstrip("/")
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    async def save_bytes(
        self,
        data: bytes,
        *,
        kind: Kind,
        mime: str,
        ext: Optional[str] = None,
    ) -> StoredObject:
        suffix = ext or self._suffix_from_mime(mime) or ".bin"
        key = self._make_key(kind=kind, suffix=suffix)
        abs_path = self.storage_dir / key
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = abs_path.with_suffix(abs_path.suffix + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, abs_path)

        return StoredObject(
            key=key,
            abs_path=str(abs_path),
            url=self.public_url(key),
            mime=mime,
        )

    def public_url(self, key: str) -> str:
        key_norm = key.replace("\\", "/").lstrip("/")
        return f"{self.base_url}/{key_norm}"

    def _make_key(self, *, kind: Kind, suffix: str) -> str:
        # shard by date to avoid huge directories
        date_prefix = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        safe_suffix = suffix if suffix.startswith(".") else f".{suffix}"
        return f"{kind}/{date_prefix}/{uuid.uuid4().hex}{safe_suffix}"

    def _suffix_from_mime(self, mime: str) -> Optional[str]:
        if mime in ("audio/wav", "audio/wave", "audio/x-wav"):
            return ".wav"
        if mime in ("audio/mpeg", "audio/mp3"):
            return ".mp3"
        return None
