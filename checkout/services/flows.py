import logging
import time
from typing import Callable, Dict, Optional

from checkout.core.config import Settings
from checkout.core.errors import FlowStateError
from checkout.services.backend import BillingBackend
from checkout.services.orchestrator import SubscriptionOrchestrator
from checkout.services.payment_methods import PaymentMethodResolver
from checkout.services.proration import ProrationClient
from checkout.services.side_effects import SubscriptionSideEffects

logger = logging.getLogger(__name__)


class FlowNotFound(FlowStateError):
    pass


class FlowRegistry:
    """
    Open checkout flows, keyed by flow id. One open flow per account.

    A flow nobody has touched for its idle TTL is closed on the next
    registry access, which wipes any card data it was holding.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.flows: Dict[str, SubscriptionOrchestrator] = {}
        self.clock = clock
        self._touched: Dict[str, float] = {}
        self._idle_ttl: Dict[str, Optional[float]] = {}

    def create(self, account_id: str, backend: BillingBackend, settings: Settings, redis=None) -> SubscriptionOrchestrator:
        self.sweep()
        # Reabrir o diálogo descarta o fluxo anterior da conta
        for flow in [f for f in self.flows.values() if f.account_id == account_id]:
            flow.close()
        side_effects = None
        if redis is not None:
            side_effects = SubscriptionSideEffects(
                redis,
                subscription_prefix=settings.subscription_cache_prefix,
                payment_methods_prefix=settings.payment_methods_cache_prefix,
                channel=settings.notification_channel,
            )
        flow = SubscriptionOrchestrator(
            account_id,
            backend,
            proration=ProrationClient(backend),
            resolver=PaymentMethodResolver(
                backend,
                redis=redis,
                cache_prefix=settings.payment_methods_cache_prefix,
                cache_ttl=settings.payment_methods_cache_ttl_seconds,
            ),
            side_effects=side_effects,
            close_delay=settings.success_close_delay_seconds,
            on_close=self._discard,
        )
        self.flows[flow.flow_id] = flow
        self._idle_ttl[flow.flow_id] = settings.flow_idle_ttl_seconds
        self._touched[flow.flow_id] = self.clock()
        return flow

    def _discard(self, flow: SubscriptionOrchestrator) -> None:
        self.flows.pop(flow.flow_id, None)
        self._touched.pop(flow.flow_id, None)
        self._idle_ttl.pop(flow.flow_id, None)

    def sweep(self) -> int:
        """Closes flows idle past their TTL. Returns how many were closed."""
        now = self.clock()
        expired = [
            flow
            for flow_id, flow in self.flows.items()
            if self._idle_ttl.get(flow_id) is not None and now - self._touched.get(flow_id, now) > self._idle_ttl[flow_id]
        ]
        for flow in expired:
            logger.info("closing idle flow %s of %s", flow.flow_id, flow.account_id)
            flow.close()
        return len(expired)

    def get(self, flow_id: str, account_id: str) -> SubscriptionOrchestrator:
        self.sweep()
        flow = self.flows.get(flow_id)
        if flow is None or flow.account_id != account_id:
            raise FlowNotFound("Flow not found")
        self._touched[flow_id] = self.clock()
        return flow

    def close_all(self) -> None:
        for flow in list(self.flows.values()):
            flow.close()


flow_registry = FlowRegistry()
