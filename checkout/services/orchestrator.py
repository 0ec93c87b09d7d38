import asyncio
import datetime as dt
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from checkout.core.errors import (
    BackendError,
    CardValidationError,
    CheckoutError,
    CommitError,
    FlowStateError,
    IncompleteConfigurationError,
    QuoteError,
    RetryAction,
    TokenizeError,
)
from checkout.schemas.billing import BillingPeriod, Plan, ProrationQuote, SetupIntent, SubmissionState
from checkout.schemas.card import CardField
from checkout.services.backend import BillingBackend
from checkout.services.capture import CaptureStrategy, NewCardCapture, SavedCardCapture
from checkout.services.card_input import CardDraft
from checkout.services.payment_methods import PaymentChoice, PaymentMethodResolver, PaymentSelection
from checkout.services.proration import ProrationClient
from checkout.services.side_effects import SubscriptionSideEffects

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Pagamento realizado com sucesso! Seu plano foi ativado."
COMMIT_AFTER_TOKENIZE_MESSAGE = (
    "Cartão aceito, mas não foi possível ativar a assinatura. "
    "Tente novamente sem informar o cartão de novo."
)
COMMIT_RETRY_EXHAUSTED_MESSAGE = "Não foi possível ativar a assinatura. Informe o cartão novamente."

SUBMITTABLE = {
    SubmissionState.QUOTE_READY,
    SubmissionState.FAILED_VALIDATION,
    SubmissionState.FAILED_TOKENIZE,
    SubmissionState.FAILED_COMMIT,
}


@dataclass
class FlowError:
    kind: str
    message: str
    retry_action: RetryAction | None
    details: list[str] = field(default_factory=list)

    @classmethod
    def from_exc(cls, exc: CheckoutError, retry_action: RetryAction | None = None) -> "FlowError":
        details = [e.value for e in exc.errors] if isinstance(exc, CardValidationError) else []
        return cls(kind=exc.kind, message=exc.message, retry_action=retry_action or exc.retry_action, details=details)

    def as_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "retryAction": self.retry_action.value if self.retry_action else None,
            "details": self.details,
        }


@dataclass
class PendingCommit:
    """Payment method already obtained for a commit that has not gone through."""

    payment_method_id: str
    tokenized: bool
    retries_left: Optional[int] = None  # None = sem limite (cartão salvo / hosted)


class SubscriptionOrchestrator:
    """
    State machine for one plan-change dialog. It is the only writer of the
    submission state and the active quote; every network or validation
    failure ends up as a FAILED_* state instead of an exception.
    """

    def __init__(
        self,
        account_id: str,
        backend: BillingBackend,
        proration: ProrationClient | None = None,
        resolver: PaymentMethodResolver | None = None,
        side_effects: SubscriptionSideEffects | None = None,
        close_delay: float = 3.0,
        on_close: Callable[["SubscriptionOrchestrator"], None] | None = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self.flow_id = uuid.uuid4().hex
        self.account_id = account_id
        self.backend = backend
        self.proration = proration or ProrationClient(backend)
        self.resolver = resolver or PaymentMethodResolver(backend)
        self.side_effects = side_effects
        self.close_delay = close_delay
        self.on_close = on_close
        self.today = today

        self.state = SubmissionState.IDLE
        self.plan: Plan | None = None
        self.period: BillingPeriod | None = None
        self.quote: ProrationQuote | None = None
        self.choice = PaymentChoice()
        self.draft = CardDraft()
        self.error: FlowError | None = None
        self.message: str | None = None
        self.result: dict | None = None
        self.client_secret: str | None = None

        self._quote_token = 0
        self._generation = 0
        self._in_flight = False
        self._pending: PendingCommit | None = None
        self._close_handle: asyncio.TimerHandle | None = None

    # -- estado ---------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self.state not in (SubmissionState.IDLE, SubmissionState.CLOSED)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def can_submit(self) -> bool:
        return self.state in SUBMITTABLE and not self._in_flight and self.quote is not None

    def _set_state(self, state: SubmissionState) -> None:
        if state != self.state:
            logger.info("flow %s: %s -> %s", self.flow_id, self.state.value, state.value)
        self.state = state

    def _fail(self, state: SubmissionState, exc: CheckoutError, retry_action: RetryAction | None = None) -> SubmissionState:
        self.error = FlowError.from_exc(exc, retry_action)
        logger.warning("flow %s failed (%s): %s", self.flow_id, exc.kind, exc.message)
        self._set_state(state)
        return self.state

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise FlowStateError("Flow is not open")

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.state != SubmissionState.CLOSED

    def _require_plan(self, plan: Plan) -> None:
        if not plan.is_complete():
            self.close()
            raise IncompleteConfigurationError()

    # -- abertura / seleção ---------------------------------------------------

    async def open(self, plan: Plan, period: BillingPeriod) -> SubmissionState:
        if self.is_open:
            raise FlowStateError("Flow already open")
        self._require_plan(plan)
        self._reset_transient()
        self.plan = plan
        self.period = BillingPeriod(period)
        generation = self._generation
        self._set_state(SubmissionState.QUOTING)
        await asyncio.gather(self._load_payment_choice(generation), self.request_quote())
        return self.state

    async def _load_payment_choice(self, generation: int) -> None:
        choice = await self.resolver.resolve(self.account_id)
        if self._is_current(generation):
            self.choice = choice

    async def select(self, plan: Plan, period: BillingPeriod) -> SubmissionState:
        """Plan or period changed while open: drop the old quote and re-quote."""
        self._ensure_open()
        if self._in_flight or self.state == SubmissionState.SUCCESS:
            raise FlowStateError(f"Cannot change plan in state {self.state.value}")
        self._require_plan(plan)
        self.plan = plan
        self.period = BillingPeriod(period)
        self._pending = None
        self.client_secret = None
        return await self.request_quote()

    async def request_quote(self) -> SubmissionState:
        self._ensure_open()
        if self._in_flight:
            raise FlowStateError("Submission in progress")
        self._quote_token += 1
        token = self._quote_token
        self.quote = None
        self.error = None
        self._set_state(SubmissionState.QUOTING)
        try:
            quote = await self.proration.quote(self.plan.id, self.period)
        except QuoteError as exc:
            if token != self._quote_token:
                return self.state
            return self._fail(SubmissionState.FAILED_QUOTE, exc)
        if token != self._quote_token:
            logger.warning("flow %s: discarding superseded quote %d (latest %d)", self.flow_id, token, self._quote_token)
            return self.state
        self.quote = quote
        self._set_state(SubmissionState.QUOTE_READY)
        return self.state

    # -- captura --------------------------------------------------------------

    def update_card(self, field: CardField, value: str) -> CardDraft:
        self._ensure_open()
        return self.draft.update(field, value)

    def flip_card(self, to_back: bool) -> bool:
        self._ensure_open()
        return self.draft.flip_to_back() if to_back else self.draft.flip_to_front()

    def choose_payment(self, selection: PaymentSelection, method_id: str | None = None) -> PaymentChoice:
        self._ensure_open()
        if PaymentSelection(selection) == PaymentSelection.SAVED:
            self.choice.choose_saved(method_id)
        else:
            self.choice.choose_new()
        return self.choice

    def selected_capture(self) -> CaptureStrategy:
        if self.choice.selection == PaymentSelection.SAVED and self.choice.selected is not None:
            return SavedCardCapture(self.choice.selected.provider_token_id)
        return NewCardCapture(self.draft.to_card_input())

    async def prepare_hosted_capture(self) -> str | None:
        self._ensure_open()
        if self.state not in SUBMITTABLE or self._in_flight:
            raise FlowStateError(f"Cannot start hosted capture in state {self.state.value}")
        generation = self._generation
        try:
            data = await self.backend.create_setup_intent()
            secret = SetupIntent.model_validate(data).client_secret
        except (BackendError, ValueError) as exc:
            if self._is_current(generation):
                message = exc.message if isinstance(exc, BackendError) else None
                self._fail(SubmissionState.FAILED_TOKENIZE, TokenizeError(message))
            return None
        if self._is_current(generation):
            self.client_secret = secret
        return secret

    # -- submissão ------------------------------------------------------------

    async def submit(self, capture: CaptureStrategy | None = None) -> SubmissionState:
        self._ensure_open()
        if self._in_flight or self.state == SubmissionState.SUCCESS:
            # reentrada proibida: segundo clique não gera segunda assinatura
            logger.info("flow %s: submit ignored in state %s", self.flow_id, self.state.value)
            return self.state
        if self.state not in SUBMITTABLE or self.quote is None:
            raise FlowStateError(f"Cannot submit in state {self.state.value}")
        capture = capture or self.selected_capture()
        if isinstance(capture, SavedCardCapture) and not self.choice.saved_available:
            raise FlowStateError("No saved payment method available")

        try:
            capture.check(today=self.today())
        except CardValidationError as exc:
            return self._fail(SubmissionState.FAILED_VALIDATION, exc)

        self._in_flight = True
        self.error = None
        self._pending = None
        generation = self._generation
        self._set_state(SubmissionState.SUBMITTING)
        try:
            try:
                payment_method_id = await capture.acquire(self.backend, self.plan.id, self.period)
            except TokenizeError as exc:
                if self._is_current(generation):
                    self._fail(SubmissionState.FAILED_TOKENIZE, exc)
                return self.state
            if not self._is_current(generation):
                return self.state
            self._pending = PendingCommit(
                payment_method_id,
                tokenized=capture.tokenizes,
                retries_left=1 if capture.tokenizes else None,
            )
            await self._commit(generation)
        finally:
            if generation == self._generation:
                self._in_flight = False
        return self.state

    async def retry(self) -> SubmissionState:
        """Retries the step that failed, without re-entering card data where possible."""
        self._ensure_open()
        if self._in_flight:
            logger.info("flow %s: retry ignored in state %s", self.flow_id, self.state.value)
            return self.state
        if self.state == SubmissionState.FAILED_QUOTE:
            return await self.request_quote()
        if self.state != SubmissionState.FAILED_COMMIT or self._pending is None:
            raise FlowStateError(f"Nothing to retry in state {self.state.value}; submit again")
        pending = self._pending
        if pending.retries_left is not None:
            pending.retries_left -= 1
        self._in_flight = True
        self.error = None
        generation = self._generation
        self._set_state(SubmissionState.SUBMITTING)
        try:
            await self._commit(generation)
        finally:
            if generation == self._generation:
                self._in_flight = False
        return self.state

    async def _commit(self, generation: int) -> None:
        pending = self._pending
        try:
            data = await self.backend.create_subscription(self.plan.id, self.period, pending.payment_method_id)
        except BackendError as exc:
            if not self._is_current(generation):
                return
            if pending.tokenized and pending.retries_left == 0:
                self._pending = None
                self._fail(
                    SubmissionState.FAILED_COMMIT,
                    CommitError(COMMIT_RETRY_EXHAUSTED_MESSAGE),
                    retry_action=RetryAction.RETOKENIZE,
                )
            elif pending.tokenized:
                self._fail(SubmissionState.FAILED_COMMIT, CommitError(COMMIT_AFTER_TOKENIZE_MESSAGE))
            else:
                self._fail(SubmissionState.FAILED_COMMIT, CommitError(exc.message))
            return
        if not self._is_current(generation):
            return
        await self._succeed(data if isinstance(data, dict) else {}, generation)

    async def _succeed(self, data: dict, generation: int) -> None:
        self._pending = None
        self.result = data
        self.message = SUCCESS_MESSAGE
        self._set_state(SubmissionState.SUCCESS)
        if self.side_effects is not None:
            await self.side_effects.subscription_committed(
                self.account_id,
                {"plan_id": self.plan.id, "billing_period": self.period.value},
            )
        if not self._is_current(generation):
            return
        # fecha sozinho depois de dar tempo de ler a confirmação
        loop = asyncio.get_running_loop()
        self._close_handle = loop.call_later(self.close_delay, self.close)

    # -- encerramento ---------------------------------------------------------

    def _reset_transient(self) -> None:
        self.quote = None
        self.choice = PaymentChoice()
        self.draft = CardDraft()
        self.error = None
        self.message = None
        self.result = None
        self.client_secret = None
        self._pending = None
        self._in_flight = False

    def close(self) -> None:
        """
        Drops every piece of transient state. In-flight requests are not
        aborted; their responses are ignored once they arrive.
        """
        if self._close_handle is not None:
            self._close_handle.cancel()
            self._close_handle = None
        was_closed = self.state == SubmissionState.CLOSED
        self._generation += 1
        self._quote_token += 1
        self._reset_transient()
        self.plan = None
        self.period = None
        self._set_state(SubmissionState.CLOSED)
        if not was_closed and self.on_close is not None:
            self.on_close(self)

    # -- visão ----------------------------------------------------------------

    def _quote_view(self) -> dict | None:
        if self.quote is None:
            return None
        view = self.quote.model_dump(mode="json", by_alias=True)
        view.update(
            percentUsed=self.quote.percent_used,
            creditApplied=str(self.quote.credit_applied),
            summary=self.quote.summary(),
        )
        return view

    def snapshot(self) -> dict:
        return {
            "flowId": self.flow_id,
            "state": self.state.value,
            "plan": self.plan.model_dump(mode="json", by_alias=True) if self.plan else None,
            "billingPeriod": self.period.value if self.period else None,
            "quote": self._quote_view(),
            "paymentChoice": self.choice.as_dict(),
            "card": self.draft.snapshot(),
            "canSubmit": self.can_submit,
            "canRetry": self.state == SubmissionState.FAILED_QUOTE
            or (self.state == SubmissionState.FAILED_COMMIT and self._pending is not None),
            "clientSecret": self.client_secret,
            "error": self.error.as_dict() if self.error else None,
            "message": self.message,
        }
