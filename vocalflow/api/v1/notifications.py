from fastapi import APIRouter, Depends, HTTPException, Request

from vocalflow.api.deps import bearer_token, functions_client, http_error
from vocalflow.core.errors import VocalflowError
from vocalflow.jobs.functions import static_credentials
from vocalflow.schemas.notification import PlaybackEmailIn, PlaybackEmailOut
from vocalflow.services.notification_service import NotificationService

router = APIRouter()


@router.post("/playback-email", response_model=PlaybackEmailOut)
async def send_playback_email(
    body: PlaybackEmailIn,
    request: Request,
    token: str | None = Depends(bearer_token),
) -> PlaybackEmailOut:
    svc = NotificationService(functions_client(request), static_credentials(token))
    try:
        result = await svc.send_playback_email(
            body.email,
            body.audio_url,
            body.song_name,
            customer_name=body.customer_name,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except VocalflowError as e:
        raise http_error(e)
    return PlaybackEmailOut(success=result["success"], message_id=result.get("messageId"))
