from __future__ import annotations

import logging
from typing import Any

from vocalflow.jobs.functions import CredentialProvider, FunctionsClient

SEND_PLAYBACK_EMAIL = "send-playback-email"


class NotificationService:
    """Outbound mail goes through the hosted send-playback-email function."""

    def __init__(self, functions: FunctionsClient, credentials: CredentialProvider) -> None:
        self.functions = functions
        self.credentials = credentials
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def send_playback_email(
        self,
        email: str,
        audio_url: str,
        song_name: str,
        customer_name: str | None = None,
    ) -> dict[str, Any]:
        missing = [
            name
            for name, value in (("email", email), ("audio_url", audio_url), ("song_name", song_name))
            if not value or not str(value).strip()
        ]
        if missing:
            raise ValueError(f"missing required fields: {', '.join(missing)}")
        if "@" not in email:
            raise ValueError("email is not a valid address")

        payload: dict[str, Any] = {"email": email, "audioUrl": audio_url, "songName": song_name}
        if customer_name:
            payload["customerName"] = customer_name

        body = await self.functions.invoke(SEND_PLAYBACK_EMAIL, payload, self.credentials())
        result: dict[str, Any] = {"success": bool(body.get("success", True))}
        message_id = body.get("messageId") or body.get("id")
        if isinstance(message_id, str) and message_id:
            result["messageId"] = message_id
        self.logger.info("Playback email for %r sent (%s)", song_name, result.get("messageId", "no id"))
        return result
