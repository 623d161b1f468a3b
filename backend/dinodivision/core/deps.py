import logging
from functools import lru_cache

from dinodivision.core.config import get_settings
from dinodivision.models.domain import REMAINDER_POLICIES
from dinodivision.services.game_loop import GameLoopOrchestrator
from dinodivision.services.image_cache import ImageGenerationCache
from dinodivision.services.image_provider import GeminiImageProvider
from dinodivision.services.image_store import ImageContentStore
from dinodivision.services.reward_unlocks import RewardFulfilmentService
from dinodivision.services.save_store import SaveStore
from dinodivision.services.sessions import GameSessionService, get_session_registry

logger = logging.getLogger("dinodivision.deps")


@lru_cache
def get_image_store() -> ImageContentStore:
    settings = get_settings()
    return ImageContentStore(settings.reward_image_dir, settings.reward_image_url_prefix)


@lru_cache
def get_image_provider() -> GeminiImageProvider:
    settings = get_settings()
    if not settings.gemini_api_key:
        logger.warning("[deps] GEMINI_API_KEY is not set; reward images cannot be generated")
    return GeminiImageProvider(api_key=settings.gemini_api_key, model=settings.gemini_image_model)


@lru_cache
def get_image_cache() -> ImageGenerationCache:
    settings = get_settings()
    return ImageGenerationCache(
        get_image_store(),
        get_image_provider(),
        timeout_seconds=settings.generation_timeout_seconds,
    )


@lru_cache
def get_save_store() -> SaveStore:
    return SaveStore(get_settings().save_dir)


@lru_cache
def get_orchestrator() -> GameLoopOrchestrator:
    settings = get_settings()
    if settings.remainder_policy not in REMAINDER_POLICIES:
        raise ValueError(
            f"REMAINDER_POLICY must be one of {REMAINDER_POLICIES}, got {settings.remainder_policy!r}"
        )
    return GameLoopOrchestrator(
        prefetch_hook=get_image_cache().prefetch,
        remainder_policy=settings.remainder_policy,
        image_url_prefix=settings.reward_image_url_prefix,
    )


@lru_cache
def get_game_service() -> GameSessionService:
    saves = get_save_store()
    return GameSessionService(
        orchestrator=get_orchestrator(),
        saves=saves,
        rewards=RewardFulfilmentService(get_image_cache(), saves),
        registry=get_session_registry(),
    )
