import httpx
import pytest

from checkout.core.deps import get_flow_registry, get_http_client, get_redis, get_settings_dep
from checkout.core.security import create_session_token
from checkout.main import get_application
from checkout.services.flows import FlowRegistry

from tests.billing_fakes import CARD_FIELDS, error_body, quote_payload

PLAN = {"id": 2, "name": "Profissional", "monthlyPrice": "197.90", "annualPrice": "1978.90"}


@pytest.fixture()
async def api(settings, http_client, redis):
    app = get_application()
    registry = FlowRegistry()
    app.dependency_overrides[get_settings_dep] = lambda: settings
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_flow_registry] = lambda: registry
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://checkout.test") as client:
        yield client
    registry.close_all()


def auth(settings, account_id: str = "acc-1") -> dict:
    return {"Authorization": f"Bearer {create_session_token(account_id, settings)}"}


async def open_flow(api, settings, plan=PLAN) -> httpx.Response:
    return await api.post("/v1/checkout/flows", json={"plan": plan, "billingPeriod": "mensal"}, headers=auth(settings))


@pytest.mark.asyncio
async def test_requires_bearer_token(api):
    resp = await api.post("/v1/checkout/flows", json={"plan": PLAN, "billingPeriod": "mensal"})
    assert resp.status_code == 401

    resp = await api.post(
        "/v1/checkout/flows",
        json={"plan": PLAN, "billingPeriod": "mensal"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_saved_card_checkout(api, settings, billing):
    resp = await open_flow(api, settings)
    assert resp.status_code == 201
    body = resp.json()
    assert body["state"] == "QUOTE_READY"
    assert body["quote"]["realCardCharge"] == "34.90"
    assert body["paymentChoice"]["selection"] == "saved"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"

    resp = await api.post(f"/v1/checkout/flows/{body['flowId']}/submit", json={}, headers=auth(settings))
    assert resp.status_code == 200
    assert resp.json()["state"] == "SUCCESS"
    assert resp.json()["message"]
    # o token da sessão segue para o backend de cobrança
    assert all(h and h.startswith("Bearer ") and h != "Bearer session-token" for h in billing.auth_headers)


@pytest.mark.asyncio
async def test_new_card_checkout(api, settings, billing):
    flow_id = (await open_flow(api, settings)).json()["flowId"]
    base = f"/v1/checkout/flows/{flow_id}"
    headers = auth(settings)

    resp = await api.post(f"{base}/payment-choice", json={"selection": "new"}, headers=headers)
    assert resp.json()["paymentChoice"]["selection"] == "new"

    resp = await api.post(f"{base}/card/flip", json={"face": "back"}, headers=headers)
    assert resp.status_code == 409

    for field, value in CARD_FIELDS.items():
        resp = await api.post(f"{base}/card", json={"field": field, "value": value}, headers=headers)
        assert resp.status_code == 200
    card = resp.json()["card"]
    assert card["number"] == "4111 1111 1111 1111"
    assert card["holderName"] == "MARIA SILVA"
    assert "cvv" not in card

    resp = await api.post(f"{base}/card/flip", json={"face": "back"}, headers=headers)
    assert resp.json()["card"]["face"] == "back"

    resp = await api.post(f"{base}/submit", json={"method": "new"}, headers=headers)
    assert resp.json()["state"] == "SUCCESS"
    assert billing.count("POST", "/billing/cards/tokenize") == 1


@pytest.mark.asyncio
async def test_validation_failure_reported_in_flow(api, settings, billing):
    flow_id = (await open_flow(api, settings)).json()["flowId"]
    headers = auth(settings)
    await api.post(f"/v1/checkout/flows/{flow_id}/payment-choice", json={"selection": "new"}, headers=headers)
    resp = await api.post(f"/v1/checkout/flows/{flow_id}/submit", json={}, headers=headers)
    body = resp.json()
    assert body["state"] == "FAILED_VALIDATION"
    assert body["error"]["kind"] == "validation"
    assert "NUMBER_TOO_SHORT" in body["error"]["details"]
    assert billing.count("POST", "/billing/cards/tokenize") == 0


@pytest.mark.asyncio
async def test_incomplete_plan_is_bad_request(api, settings, billing):
    resp = await open_flow(api, settings, plan={"name": "Profissional"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "configuration"
    assert billing.calls == []


@pytest.mark.asyncio
async def test_quote_failure_then_retry(api, settings, billing):
    billing.on("POST", "/billing/proration", error_body("Serviço de proração fora do ar"), quote_payload())
    body = (await open_flow(api, settings)).json()
    assert body["state"] == "FAILED_QUOTE"
    assert body["canRetry"] is True
    headers = auth(settings)

    resp = await api.post(f"/v1/checkout/flows/{body['flowId']}/submit", json={}, headers=headers)
    assert resp.status_code == 409

    resp = await api.post(f"/v1/checkout/flows/{body['flowId']}/retry", headers=headers)
    assert resp.json()["state"] == "QUOTE_READY"


@pytest.mark.asyncio
async def test_saved_submit_requires_payment_method_id(api, settings):
    flow_id = (await open_flow(api, settings)).json()["flowId"]
    resp = await api.post(f"/v1/checkout/flows/{flow_id}/submit", json={"method": "saved"}, headers=auth(settings))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_hosted_capture_endpoint(api, settings):
    flow_id = (await open_flow(api, settings)).json()["flowId"]
    headers = auth(settings)
    resp = await api.post(f"/v1/checkout/flows/{flow_id}/hosted-capture", headers=headers)
    assert resp.json() == {"clientSecret": "seti_secret_123"}
    resp = await api.post(
        f"/v1/checkout/flows/{flow_id}/submit",
        json={"method": "hosted", "paymentMethodId": "pm_hosted"},
        headers=headers,
    )
    assert resp.json()["state"] == "SUCCESS"


@pytest.mark.asyncio
async def test_flows_are_private_and_closable(api, settings):
    flow_id = (await open_flow(api, settings)).json()["flowId"]

    resp = await api.get(f"/v1/checkout/flows/{flow_id}", headers=auth(settings, "acc-2"))
    assert resp.status_code == 404

    resp = await api.get(f"/v1/checkout/flows/{flow_id}", headers=auth(settings))
    assert resp.json()["flowId"] == flow_id

    resp = await api.delete(f"/v1/checkout/flows/{flow_id}", headers=auth(settings))
    assert resp.status_code == 204
    resp = await api.get(f"/v1/checkout/flows/{flow_id}", headers=auth(settings))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_plan_change_while_open(api, settings, billing):
    flow_id = (await open_flow(api, settings)).json()["flowId"]
    resp = await api.post(
        f"/v1/checkout/flows/{flow_id}/selection",
        json={"plan": PLAN, "billingPeriod": "anual"},
        headers=auth(settings),
    )
    assert resp.status_code == 200
    assert billing.bodies("POST", "/billing/proration")[-1]["billingPeriod"] == "anual"
