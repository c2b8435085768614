from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Conversation memory
    CONVERSATION_BACKEND: str = "redis"
    CONVERSATION_KEY_PREFIX: str = "vibecode:chat"
    CONVERSATION_TTL_SECONDS: int = 3600
    CONVERSATION_MAX_MESSAGES: int = 20

    # AI Provider (OpenAI-compatible)
    AI_API_KEY: str = "mock_ai_key"
    AI_BASE_URL: str = "https://api.openai.com/v1"
    AI_MODEL: str = "gpt-4o"
    AI_TIMEOUT_SECONDS: float = 120.0
    AI_MAX_TOOL_ROUNDS: int = 8

    # Generated artifacts
    CODE_OUTPUT_ROOT: str = "/app/output"
    HTML_AUGMENTATION: str = "serve"
    STAGING_MAX_AGE_SECONDS: int = 3600

    # App
    ALLOWED_ORIGINS: str = "*"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
