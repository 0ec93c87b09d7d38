from pydantic import Field

from checkout.schemas.billing import BillingPeriod, CamelModel, Plan, SubmissionState
from checkout.schemas.card import CardFace, CardField
from checkout.services.capture import CaptureKind
from checkout.services.payment_methods import PaymentSelection


class FlowOpenIn(CamelModel):
    plan: Plan
    billing_period: BillingPeriod


class CardFieldIn(CamelModel):
    field: CardField
    value: str = Field(default="", max_length=64)


class CardFlipIn(CamelModel):
    face: CardFace


class PaymentChoiceIn(CamelModel):
    selection: PaymentSelection
    payment_method_id: str | None = Field(default=None, max_length=128)


class SubmitIn(CamelModel):
    # None = usar a escolha atual do fluxo (cartão salvo ou rascunho)
    method: CaptureKind | None = None
    payment_method_id: str | None = Field(default=None, max_length=128)


class HostedCaptureOut(CamelModel):
    client_secret: str | None


class FlowOut(CamelModel):
    flow_id: str
    state: SubmissionState
    plan: dict | None = None
    billing_period: BillingPeriod | None = None
    quote: dict | None = None
    payment_choice: dict
    card: dict
    can_submit: bool
    can_retry: bool
    client_secret: str | None = None
    error: dict | None = None
    message: str | None = None
