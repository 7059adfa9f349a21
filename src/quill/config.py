from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheTTL(BaseModel):
    """Default TTLs (seconds) by resource volatility."""

    post_list: int = 300
    post_by_slug: int = 600
    tag_list: int = 600
    user_posts: int = 60
    comment_list: int = 300


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="QUILL_", env_file=".env", extra="ignore", populate_by_name=True
    )

    app_name: str = "quill"
    env: str = "dev"
    host: str = "0.0.0.0"  # nosec B104 - intentional for container deployments
    port: int = 3001

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Response cache
    cache_backend: str = Field(default="redis", validation_alias="QUILL_CACHE_BACKEND")
    cache_key_prefix: str = "quill"
    cache_lookup_timeout: float = Field(default=0.25, validation_alias="CACHE_LOOKUP_TIMEOUT")
    cache_write_timeout: float = Field(default=1.0, validation_alias="CACHE_WRITE_TIMEOUT")
    cache_default_ttl: int = Field(default=300, validation_alias="CACHE_DEFAULT_TTL")
    cache_ttl: CacheTTL = Field(default_factory=CacheTTL)
    tags_path: str = "/api/tags"

    # Redis reconnection
    redis_reconnect_delay_initial: float = Field(
        default=0.1, validation_alias="REDIS_RECONNECT_DELAY_INITIAL"
    )
    redis_reconnect_delay_max: float = Field(
        default=3.0, validation_alias="REDIS_RECONNECT_DELAY_MAX"
    )
    redis_reconnect_delay_multiplier: float = Field(
        default=2.0, validation_alias="REDIS_RECONNECT_MULTIPLIER"
    )
    redis_max_reconnect_attempts: int = Field(
        default=10, validation_alias="REDIS_MAX_RECONNECT_ATTEMPTS"
    )
    redis_socket_timeout: float = Field(default=2.0, validation_alias="REDIS_SOCKET_TIMEOUT")

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_level: str = "INFO"

    # Cache admin endpoints are disabled unless a token is configured
    admin_token: str | None = Field(default=None, validation_alias="QUILL_ADMIN_TOKEN")


settings = Settings()
