from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_namespace: str = "comiclens"

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]

    # Provider (기본값, 런타임 설정은 preferences에서 덮어씀)
    provider_id: str = "gemini"  # "gemini" | "claude" | "openai" | "ollama"
    provider_timeout: float = 60.0

    # API 키
    gemini_api_key: str = ""
    claude_api_key: str = ""
    openai_api_key: str = ""

    # 모델
    gemini_model: str = "gemini-2.5-flash-lite"
    claude_model: str = "claude-sonnet-4-6"
    openai_model: str = "gpt-5.2-2025-12-11"
    ollama_model: str = "qwen3-vl:8b"
    ollama_endpoint: str = "http://localhost:11434"

    # 번역
    target_language: str = "ja"

    # Cache
    cache_soft_limit_bytes: int = 8 * 1024 * 1024
    cache_quota_bytes: int = 10 * 1024 * 1024

    # Prefetch
    prefetch_enabled: bool = False
    prefetch_concurrency: int = 1
    prefetch_max_queue: int = 50
    prefetch_debounce_seconds: float = 0.5
    prefetch_batch_delay_seconds: float = 4.2  # 무료 티어 15 RPM → 약 14 RPM


@lru_cache
def get_settings() -> Settings:
    return Settings()
