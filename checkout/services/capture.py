import datetime as dt
from dataclasses import dataclass
from enum import Enum

from checkout.core.errors import BackendError, CardValidationError, TokenizeError
from checkout.schemas.billing import BillingPeriod, TokenizedCard
from checkout.schemas.card import CardInput
from checkout.services.backend import BillingBackend
from checkout.services.card_input import validate


class CaptureKind(str, Enum):
    SAVED = "saved"
    NEW = "new"
    HOSTED = "hosted"


@dataclass(frozen=True)
class SavedCardCapture:
    payment_method_id: str
    kind = CaptureKind.SAVED
    tokenizes = False

    def check(self, today: dt.date | None = None) -> None:
        return None

    async def acquire(self, backend: BillingBackend, plan_id: int, period: BillingPeriod) -> str:
        return self.payment_method_id


@dataclass(frozen=True)
class NewCardCapture:
    card: CardInput
    kind = CaptureKind.NEW
    tokenizes = True

    def check(self, today: dt.date | None = None) -> None:
        result = validate(self.card, today=today)
        if not result.is_valid:
            raise CardValidationError(result.errors, "; ".join(result.messages()))

    async def acquire(self, backend: BillingBackend, plan_id: int, period: BillingPeriod) -> str:
        try:
            data = await backend.tokenize_card(self.card, plan_id, period)
            return TokenizedCard.model_validate(data).payment_method_id
        except BackendError as exc:
            raise TokenizeError(exc.message) from exc
        except ValueError as exc:
            raise TokenizeError() from exc


@dataclass(frozen=True)
class HostedCapture:
    """Card captured by the provider's hosted element; we only get its id."""

    payment_method_id: str
    kind = CaptureKind.HOSTED
    tokenizes = False

    def check(self, today: dt.date | None = None) -> None:
        if not self.payment_method_id:
            raise CardValidationError([], "Método de pagamento não confirmado")

    async def acquire(self, backend: BillingBackend, plan_id: int, period: BillingPeriod) -> str:
        return self.payment_method_id


CaptureStrategy = SavedCardCapture | NewCardCapture | HostedCapture
