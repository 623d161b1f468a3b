from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_name: str = "Dino Division"
    debug: bool = False

    # Gemini image provider
    gemini_api_key: str = ""
    gemini_image_model: str = "gemini-2.0-flash-exp"
    generation_timeout_seconds: float = 90.0

    # Reward artifacts (content store)
    reward_image_dir: str = "public/rewards"
    reward_image_url_prefix: str = "/rewards"

    # Save files
    save_dir: str = ".dinodivision_saves"

    # Game loop
    remainder_policy: str = "allow"

    # CORS
    frontend_url: str = "http://localhost:5173"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
