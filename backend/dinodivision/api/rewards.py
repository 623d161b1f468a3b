import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from dinodivision.core.deps import get_game_service, get_image_cache
from dinodivision.core.errors import (
    ImageGenerationError,
    ImageGenerationTimeout,
    SessionNotFoundError,
)
from dinodivision.models.game import (
    GeneratedImageResponse,
    GenerateImageRequest,
    ImageStatusResponse,
)
from dinodivision.services.image_cache import ImageGenerationCache
from dinodivision.services.reward_roster import REWARD_INTERVAL, ROSTER
from dinodivision.services.sessions import GameSessionService
from dinodivision.services.telemetry import instrument

logger = logging.getLogger("dinodivision.api.rewards")

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


@router.get("/image-status", response_model=ImageStatusResponse)
async def image_status(
    subject_name: str = Query(..., min_length=1),
    cache: ImageGenerationCache = Depends(get_image_cache),
):
    """Polling endpoint: missing | generating | ready."""
    try:
        return cache.status(subject_name).to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/generate-image", response_model=GeneratedImageResponse)
@instrument(route="/api/rewards/generate-image")
async def generate_image(
    request: GenerateImageRequest,
    cache: ImageGenerationCache = Depends(get_image_cache),
):
    """Return the cached image for a subject, generating it at most once."""
    try:
        image = await cache.get(request.subject_name)
    except ImageGenerationTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    except ImageGenerationError as e:
        logger.warning("[rewards.generate_image] %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"subjectName": image.subject_name, "imagePath": image.image_path}


@router.post("/{session_id}/retry")
@instrument(route="/api/rewards/retry")
async def retry_rewards(session_id: str, service: GameSessionService = Depends(get_game_service)):
    """Re-queue rewards that were unlocked but never made it into the save."""
    try:
        fulfilments = await service.retry_rewards(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {
        "session_id": session_id,
        "queued": [f.to_dict() for f in fulfilments],
    }


@router.get("/roster")
async def roster(cache: ImageGenerationCache = Depends(get_image_cache)):
    entries = []
    for i, name in enumerate(ROSTER):
        status = cache.status(name)
        entries.append({
            "milestone": i + 1,
            "solved_count": (i + 1) * REWARD_INTERVAL,
            "subject_name": name,
            "status": status.status,
            "image_path": status.image_path,
        })
    return {"interval": REWARD_INTERVAL, "roster": entries}
