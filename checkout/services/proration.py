import logging

from pydantic import ValidationError

from checkout.core.errors import BackendError, QuoteError
from checkout.schemas.billing import BillingPeriod, ProrationQuote
from checkout.services.backend import BillingBackend

logger = logging.getLogger(__name__)


class ProrationClient:
    """
    Fetches the authoritative proration quote. No currency math happens here:
    the backend computes every amount and this client only checks that the
    figures it got back are consistent with each other.
    """

    def __init__(self, backend: BillingBackend):
        self.backend = backend

    async def quote(self, target_plan_id: int, target_period: BillingPeriod) -> ProrationQuote:
        try:
            data = await self.backend.quote_proration(target_plan_id, target_period)
        except BackendError as exc:
            raise QuoteError(exc.message) from exc
        # Formato antigo: dados dentro de `proracao`
        if isinstance(data, dict) and isinstance(data.get("proracao"), dict):
            data = _flatten_legacy(data)
        try:
            return ProrationQuote.model_validate(data)
        except ValidationError as exc:
            logger.error("inconsistent proration quote for plan %s/%s: %s", target_plan_id, target_period.value, exc)
            raise QuoteError("O cálculo retornado pelo servidor é inconsistente.") from exc


def _flatten_legacy(data: dict) -> dict:
    proration = data["proracao"]

    def _snapshot(plan) -> dict | None:
        if not isinstance(plan, dict):
            return None
        return {"id": plan.get("id"), "name": plan.get("nome"), "value": plan.get("valor"), "period": plan.get("periodo")}

    return {
        "operationType": data.get("tipoOperacao"),
        "currentPlan": _snapshot(data.get("planoAtual")),
        "newPlan": _snapshot(data.get("planoNovo")),
        "exactDelta": proration.get("valorExato"),
        "chargeTiming": proration.get("tipoCobranca"),
        "availableCredit": proration.get("creditoDisponivel"),
        "realCardCharge": proration.get("valorRealCartao"),
        "daysUsed": proration.get("diasUsados"),
        "daysRemaining": proration.get("diasRestantes"),
        "daysTotal": proration.get("diasTotais"),
        "nextBillingDate": proration.get("proximaCobrancaData"),
        "humanDescription": proration.get("descricao", ""),
    }
