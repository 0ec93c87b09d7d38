import httpx
from fastapi import Depends
from redis import asyncio as aioredis
from redis.asyncio import ConnectionPool, Redis

from checkout.core.config import get_settings, Settings
from checkout.services.backend import build_http_client
from checkout.services.flows import FlowRegistry, flow_registry

_redis_pool: ConnectionPool | None = None
_http_client: httpx.AsyncClient | None = None


async def get_settings_dep() -> Settings:
    return get_settings()


def _ensure_redis_pool(url: str) -> ConnectionPool:
    global _redis_pool
    settings = get_settings()
    if not url.startswith("rediss://") and settings.environment != "development":
        raise RuntimeError("Redis URL must use TLS (rediss://) for production safety")
    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            url,
            max_connections=64,
            decode_responses=True,
            socket_timeout=1.0,
            socket_connect_timeout=1.0,
            health_check_interval=30,
        )
    return _redis_pool


def get_redis(settings: Settings = Depends(get_settings_dep)) -> Redis:
    # Fluxos vivem além da requisição, então o cliente não é fechado aqui
    return aioredis.Redis(connection_pool=_ensure_redis_pool(settings.redis_url))


def get_http_client(settings: Settings = Depends(get_settings_dep)) -> httpx.AsyncClient:
    global _http_client
    if _http_client is None:
        _http_client = build_http_client(settings)
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


def get_flow_registry() -> FlowRegistry:
    return flow_registry
