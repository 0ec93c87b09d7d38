import datetime as dt
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, Any

from pydantic import AliasChoices, AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

CENT = Decimal("0.01")


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# Valores em reais, sempre com duas casas
Money = Annotated[Decimal, AfterValidator(_to_cents)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BillingPeriod(str, Enum):
    MONTHLY = "mensal"
    ANNUAL = "anual"


class OperationType(str, Enum):
    UPGRADE = "UPGRADE"
    DOWNGRADE = "DOWNGRADE"
    PERIOD_CHANGE = "MUDANCA_PERIODO"


class ChargeTiming(str, Enum):
    IMMEDIATE = "IMEDIATA"
    NEXT_CYCLE = "PROXIMO_CICLO"


class SubmissionState(str, Enum):
    IDLE = "IDLE"
    QUOTING = "QUOTING"
    QUOTE_READY = "QUOTE_READY"
    FAILED_QUOTE = "FAILED_QUOTE"
    SUBMITTING = "SUBMITTING"
    SUCCESS = "SUCCESS"
    FAILED_VALIDATION = "FAILED_VALIDATION"
    FAILED_TOKENIZE = "FAILED_TOKENIZE"
    FAILED_COMMIT = "FAILED_COMMIT"
    CLOSED = "CLOSED"


class Plan(CamelModel):
    """Reference data for a plan tier as the UI hands it to the flow."""

    id: int | None = None
    name: str | None = None
    monthly_price: Money | None = None
    annual_price: Money | None = None

    def is_complete(self) -> bool:
        return self.id is not None and bool(self.name and self.name.strip())


class PlanSnapshot(CamelModel):
    id: int | str
    name: str
    value: Money
    period: BillingPeriod


class ProrationQuote(CamelModel):
    operation_type: OperationType
    current_plan: PlanSnapshot
    new_plan: PlanSnapshot
    exact_delta: Money
    charge_timing: ChargeTiming
    available_credit: Money = Field(default=Decimal("0.00"), ge=0)
    real_card_charge: Money = Field(ge=0)
    days_used: int = Field(ge=0)
    days_remaining: int = Field(ge=0)
    days_total: int = Field(gt=0)
    next_billing_date: dt.date | None = None
    human_description: str = ""

    @field_validator("available_credit", mode="before")
    @classmethod
    def _absent_credit_is_zero(cls, value: Any) -> Any:
        return Decimal("0") if value is None else value

    @field_validator("next_billing_date", mode="before")
    @classmethod
    def _parse_billing_date(cls, value: Any) -> Any:
        # O backend formata em pt-BR (dd/mm/aaaa); aceitar ISO também
        if isinstance(value, str) and "/" in value:
            return dt.datetime.strptime(value, "%d/%m/%Y").date()
        return value

    @model_validator(mode="after")
    def _check_invariants(self) -> "ProrationQuote":
        if self.days_used + self.days_remaining != self.days_total:
            raise ValueError("daysUsed + daysRemaining must equal daysTotal")
        if self.operation_type == OperationType.DOWNGRADE and self.charge_timing != ChargeTiming.NEXT_CYCLE:
            raise ValueError("downgrades are always applied on the next cycle")
        if self.charge_timing == ChargeTiming.IMMEDIATE:
            expected = max(Decimal("0.00"), self.exact_delta - self.available_credit)
            if self.real_card_charge != expected:
                raise ValueError(
                    f"realCardCharge {self.real_card_charge} does not match exactDelta - availableCredit ({expected})"
                )
        return self

    @property
    def is_immediate(self) -> bool:
        return self.charge_timing == ChargeTiming.IMMEDIATE

    @property
    def credit_applied(self) -> Decimal:
        if not self.is_immediate:
            return Decimal("0.00")
        return min(self.available_credit, max(Decimal("0.00"), self.exact_delta))

    @property
    def percent_used(self) -> int:
        return int((Decimal(self.days_used) * 100 / Decimal(self.days_total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def summary(self) -> str:
        if self.is_immediate:
            return f"Cobrança imediata de R$ {self.real_card_charge} no cartão"
        when = self.next_billing_date.strftime("%d/%m/%Y") if self.next_billing_date else "no próximo ciclo"
        return f"Crédito de R$ {abs(self.exact_delta)} aplicado em {when}"


class PaymentMethod(CamelModel):
    id: int | str
    provider_token_id: str = Field(validation_alias=AliasChoices("providerTokenId", "stripePaymentMethodId", "provider_token_id"))
    brand: str
    last4: str
    exp_month: int
    exp_year: int
    is_default: bool = False

    def label(self) -> str:
        return f"{self.brand.upper()} **** {self.last4} (expira {self.exp_month:02d}/{self.exp_year})"


class SetupIntent(CamelModel):
    client_secret: str


class TokenizedCard(CamelModel):
    payment_method_id: str
