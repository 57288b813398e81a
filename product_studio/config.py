from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # OpenRouter API
    OPENROUTER_API_KEY: Optional[str] = None
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1/chat/completions"
    PROMPT_MODEL: str = "google/gemini-2.0-flash-001"  # Prompt expansion and probe
    IMAGE_MODEL: str = "google/gemini-2.5-flash-image-preview"  # Must support image output

    # Backend mode: "prompt" (expanded prompts + placeholders) or "image" (direct images)
    BACKEND_MODE: str = "prompt"

    # Timeouts (seconds), applied per backend call by the client
    REQUEST_TIMEOUT: int = 60
    IMAGE_REQUEST_TIMEOUT: int = 120
    PROBE_TIMEOUT: int = 30

    # Generation Settings
    PROMPT_WORD_TARGET: int = 300

    # Request attribution headers sent to OpenRouter
    HTTP_REFERER: str = "https://github.com/product-studio/product-studio"
    APP_TITLE: str = "Product Studio"

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def has_api_key(self) -> bool:
        return bool(self.OPENROUTER_API_KEY and self.OPENROUTER_API_KEY.strip())


def load_settings(**overrides) -> Settings:
    """Read settings from the environment and .env, applying explicit overrides"""
    return Settings(**overrides)
