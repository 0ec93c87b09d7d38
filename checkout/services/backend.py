import logging
from typing import Any

import httpx

from checkout.core.config import Settings
from checkout.core.errors import BackendError
from checkout.schemas.billing import BillingPeriod
from checkout.schemas.card import CardInput

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "Serviço de cobrança indisponível"


def _error_message(data: Any) -> str | None:
    """
    Extracts the message from the uniform `{error: {message}}` envelope. The
    older `{error: "...", message: "..."}` shape is understood as well.
    """
    if not isinstance(data, dict) or not data.get("error"):
        return None
    error = data["error"]
    if isinstance(error, dict):
        return error.get("message") or UNAVAILABLE_MESSAGE
    return data.get("message") or str(error)


def build_http_client(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.billing_api_url,
        headers={"Accept": "application/json"},
        timeout=settings.billing_http_timeout_seconds,
        transport=transport,
    )


class BillingBackend:
    """
    Billing backend calls made on behalf of one session. The underlying
    httpx client is shared; only the forwarded credentials differ.
    """

    def __init__(self, client: httpx.AsyncClient, session_token: str | None = None):
        self._client = client
        self._headers = {"Authorization": f"Bearer {session_token}"} if session_token else {}

    async def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        try:
            resp = await self._client.request(method, path, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.warning("billing backend %s %s failed: %s", method, path, exc.__class__.__name__)
            raise BackendError(UNAVAILABLE_MESSAGE) from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise BackendError(UNAVAILABLE_MESSAGE, resp.status_code) from exc
        # Ausência de `error` = sucesso, independente do status HTTP
        message = _error_message(data)
        if message is not None:
            raise BackendError(message, resp.status_code)
        return data

    async def quote_proration(self, plan_id: int, period: BillingPeriod) -> Any:
        return await self._request("POST", "/billing/proration", {"planId": plan_id, "billingPeriod": period.value})

    async def list_payment_methods(self) -> Any:
        return await self._request("GET", "/billing/payment-methods")

    async def tokenize_card(self, card: CardInput, plan_id: int, period: BillingPeriod) -> Any:
        return await self._request(
            "POST",
            "/billing/cards/tokenize",
            {
                "number": card.digits,
                "name": card.holder_name,
                "expiryMonth": card.expiry_month,
                "expiryYear": card.expiry_year,
                "cvv": card.cvv,
                "planId": plan_id,
                "billingPeriod": period.value,
            },
        )

    async def create_subscription(self, plan_id: int, period: BillingPeriod, payment_method_id: str | None = None) -> Any:
        payload: dict[str, Any] = {"planId": plan_id, "billingPeriod": period.value}
        if payment_method_id:
            payload["paymentMethodId"] = payment_method_id
        return await self._request("POST", "/billing/subscriptions", payload)

    async def create_setup_intent(self) -> Any:
        return await self._request("POST", "/billing/setup-intent")
