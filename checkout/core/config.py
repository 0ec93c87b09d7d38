from functools import lru_cache
from typing import List, Optional

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = "Meu Preço Certo Checkout"
    environment: str = "development"
    debug: bool = False

    redis_url: str = "redis://localhost:6379/0"

    # Backend de cobrança (autoritativo para proração e assinaturas)
    billing_api_url: str = "http://localhost:5000/api"
    # None = sem timeout no cliente
    billing_http_timeout_seconds: Optional[float] = 15.0

    success_close_delay_seconds: float = 3.0
    # fluxos abandonados são fechados (e o cartão apagado) após este tempo
    flow_idle_ttl_seconds: Optional[float] = 1800.0
    payment_methods_cache_ttl_seconds: int = 900
    subscription_cache_prefix: str = "sub"
    payment_methods_cache_prefix: str = "pm"
    notification_channel: str = "billing-events"

    # Session tokens
    jwt_secret_key: Optional[str] = None  # HS* only, dev/test
    jwt_public_key: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None
    jwt_clock_skew_seconds: int = 30

    cors_origins: List[AnyHttpUrl] = Field(default_factory=list)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
