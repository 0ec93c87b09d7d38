import httpx
import pytest
from fakeredis import FakeAsyncRedis

from checkout.core.config import Settings
from checkout.services.backend import BillingBackend

from tests.billing_fakes import BASE_URL, SAVED_METHODS, FakeBillingServer, quote_payload


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        billing_api_url=BASE_URL,
        redis_url="redis://localhost:6379/0",
        jwt_secret_key="test-secret",
        jwt_algorithm="HS256",
        jwt_issuer="https://issuer.test",
        jwt_audience="checkout",
        jwt_clock_skew_seconds=30,
        success_close_delay_seconds=0.05,
    )


@pytest.fixture()
def billing() -> FakeBillingServer:
    server = FakeBillingServer()
    server.on("POST", "/billing/proration", quote_payload())
    server.on("GET", "/billing/payment-methods", SAVED_METHODS)
    server.on("POST", "/billing/cards/tokenize", {"paymentMethodId": "pm_new"})
    server.on("POST", "/billing/subscriptions", {"subscription": {"id": "sub_1", "status": "active"}})
    server.on("POST", "/billing/setup-intent", {"clientSecret": "seti_secret_123"})
    return server


@pytest.fixture()
async def http_client(billing):
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(billing.handler))
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture()
def backend(http_client) -> BillingBackend:
    return BillingBackend(http_client, session_token="session-token")


@pytest.fixture()
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()
