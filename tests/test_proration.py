import datetime as dt
from decimal import Decimal

import pytest
from pydantic import ValidationError

from checkout.core.errors import QuoteError
from checkout.schemas.billing import BillingPeriod, ChargeTiming, OperationType, ProrationQuote
from checkout.services.proration import ProrationClient

from tests.billing_fakes import error_body, quote_payload


def test_upgrade_quote_figures():
    quote = ProrationQuote.model_validate(quote_payload())
    assert quote.operation_type == OperationType.UPGRADE
    assert quote.is_immediate
    assert quote.exact_delta == Decimal("54.90")
    assert quote.real_card_charge == Decimal("34.90")
    assert quote.credit_applied == Decimal("20.00")
    assert quote.percent_used == 50
    assert quote.next_billing_date == dt.date(2026, 11, 3)
    assert quote.summary() == "Cobrança imediata de R$ 34.90 no cartão"


def test_credit_larger_than_delta_charges_zero():
    quote = ProrationQuote.model_validate(quote_payload(availableCredit=80.00, realCardCharge=0))
    assert quote.real_card_charge == Decimal("0.00")
    assert quote.credit_applied == Decimal("54.90")


def test_missing_credit_is_zero():
    payload = quote_payload(realCardCharge=54.90)
    del payload["availableCredit"]
    assert ProrationQuote.model_validate(payload).available_credit == Decimal("0.00")
    payload["availableCredit"] = None
    assert ProrationQuote.model_validate(payload).available_credit == Decimal("0.00")


def test_downgrade_is_next_cycle():
    quote = ProrationQuote.model_validate(
        quote_payload(
            operationType="DOWNGRADE",
            exactDelta=-40.00,
            chargeTiming="PROXIMO_CICLO",
            realCardCharge=0,
            nextBillingDate="03/11/2026",
        )
    )
    assert quote.charge_timing == ChargeTiming.NEXT_CYCLE
    assert quote.credit_applied == Decimal("0.00")
    assert quote.summary() == "Crédito de R$ 40.00 aplicado em 03/11/2026"


@pytest.mark.parametrize(
    "overrides",
    [
        {"operationType": "DOWNGRADE"},
        {"realCardCharge": 54.90},
        {"daysUsed": 10},
        {"daysTotal": 0, "daysUsed": 0, "daysRemaining": 0},
        {"realCardCharge": -1},
        {"chargeTiming": "LATER"},
    ],
)
def test_inconsistent_quotes_rejected(overrides):
    with pytest.raises(ValidationError):
        ProrationQuote.model_validate(quote_payload(**overrides))


@pytest.mark.asyncio
async def test_client_sends_target_plan_and_period(backend, billing):
    quote = await ProrationClient(backend).quote(2, BillingPeriod.ANNUAL)
    assert quote.new_plan.name == "Profissional"
    assert billing.bodies("POST", "/billing/proration") == [{"planId": 2, "billingPeriod": "anual"}]


@pytest.mark.asyncio
async def test_client_accepts_legacy_payload(backend, billing):
    billing.on(
        "POST",
        "/billing/proration",
        {
            "tipoOperacao": "MUDANCA_PERIODO",
            "planoAtual": {"id": 2, "nome": "Profissional", "valor": 197.90, "periodo": "mensal"},
            "planoNovo": {"id": 2, "nome": "Profissional", "valor": 1978.90, "periodo": "anual"},
            "proracao": {
                "valorExato": 1880.00,
                "tipoCobranca": "IMEDIATA",
                "creditoDisponivel": 98.90,
                "valorRealCartao": 1781.10,
                "diasUsados": 15,
                "diasRestantes": 15,
                "diasTotais": 30,
                "proximaCobrancaData": "03/11/2027",
                "descricao": "Mudança para o plano anual",
            },
        },
    )
    quote = await ProrationClient(backend).quote(2, BillingPeriod.ANNUAL)
    assert quote.operation_type == OperationType.PERIOD_CHANGE
    assert quote.real_card_charge == Decimal("1781.10")
    assert quote.next_billing_date == dt.date(2027, 11, 3)


@pytest.mark.asyncio
async def test_legacy_payload_with_malformed_plan_is_quote_error(backend, billing):
    billing.on("POST", "/billing/proration", {"proracao": {"valorExato": 1}, "planoAtual": "Essencial"})
    with pytest.raises(QuoteError):
        await ProrationClient(backend).quote(2, BillingPeriod.MONTHLY)


@pytest.mark.asyncio
async def test_backend_error_becomes_quote_error(backend, billing):
    billing.on("POST", "/billing/proration", error_body("Plano não encontrado"))
    with pytest.raises(QuoteError) as exc:
        await ProrationClient(backend).quote(99, BillingPeriod.MONTHLY)
    assert exc.value.message == "Plano não encontrado"


@pytest.mark.asyncio
async def test_inconsistent_server_figures_become_quote_error(backend, billing):
    billing.on("POST", "/billing/proration", quote_payload(realCardCharge=10.00))
    with pytest.raises(QuoteError) as exc:
        await ProrationClient(backend).quote(2, BillingPeriod.MONTHLY)
    assert "inconsistente" in exc.value.message
