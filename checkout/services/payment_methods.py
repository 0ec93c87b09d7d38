import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from checkout.core.errors import BackendError, FlowStateError
from checkout.schemas.billing import PaymentMethod
from checkout.services.backend import BillingBackend

logger = logging.getLogger(__name__)

_methods_adapter = TypeAdapter(List[PaymentMethod])


class PaymentSelection(str, Enum):
    SAVED = "saved"
    NEW = "new"


def resolve_default(methods: List[PaymentMethod]) -> PaymentMethod | None:
    for method in methods:
        if method.is_default:
            return method
    return methods[0] if methods else None


@dataclass
class PaymentChoice:
    """
    Binary choice between a saved card and capturing a new one. With no saved
    methods the choice is pinned to NEW; otherwise SAVED (the default card) is
    preselected.
    """

    methods: List[PaymentMethod] = field(default_factory=list)
    selection: PaymentSelection = PaymentSelection.NEW
    selected: PaymentMethod | None = None

    @classmethod
    def from_methods(cls, methods: List[PaymentMethod]) -> "PaymentChoice":
        default = resolve_default(methods)
        if default is None:
            return cls(methods=[], selection=PaymentSelection.NEW, selected=None)
        return cls(methods=list(methods), selection=PaymentSelection.SAVED, selected=default)

    @property
    def saved_available(self) -> bool:
        return bool(self.methods)

    def choose_saved(self, method_id: str | None = None) -> None:
        if not self.saved_available:
            raise FlowStateError("No saved payment method available")
        if method_id is None:
            self.selected = self.selected or resolve_default(self.methods)
        else:
            match = next(
                (m for m in self.methods if m.provider_token_id == method_id or str(m.id) == str(method_id)),
                None,
            )
            if match is None:
                raise FlowStateError("Unknown payment method")
            self.selected = match
        self.selection = PaymentSelection.SAVED

    def choose_new(self) -> None:
        self.selection = PaymentSelection.NEW

    def as_dict(self) -> dict:
        return {
            "selection": self.selection.value,
            "savedAvailable": self.saved_available,
            "selectedId": self.selected.provider_token_id if self.selected else None,
            "methods": [
                {"id": m.provider_token_id, "label": m.label(), "isDefault": m.is_default} for m in self.methods
            ],
        }


class PaymentMethodResolver:
    def __init__(self, backend: BillingBackend, redis: Redis | None = None, cache_prefix: str = "pm", cache_ttl: int = 900):
        self.backend = backend
        self.redis = redis
        self.cache_prefix = cache_prefix
        self.cache_ttl = cache_ttl

    def _cache_key(self, account_id: str) -> str:
        return f"{self.cache_prefix}:{account_id}"

    async def _cached(self, account_id: str) -> List[PaymentMethod] | None:
        if self.redis is None:
            return None
        key = self._cache_key(account_id)
        try:
            raw = await self.redis.get(key)
            if not raw:
                return None
            try:
                return _methods_adapter.validate_json(raw)
            except ValidationError:
                await self.redis.delete(key)
                return None
        except RedisError as exc:
            logger.warning("payment methods cache read failed for %s: %s", account_id, exc)
            return None

    async def _store(self, account_id: str, methods: List[PaymentMethod]) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.set(
                self._cache_key(account_id),
                json.dumps(_methods_adapter.dump_python(methods, mode="json", by_alias=True)),
                ex=self.cache_ttl,
            )
        except RedisError as exc:
            logger.warning("payment methods cache write failed for %s: %s", account_id, exc)

    async def list_methods(self, account_id: str) -> List[PaymentMethod]:
        cached = await self._cached(account_id)
        if cached is not None:
            return cached
        data = await self.backend.list_payment_methods()
        methods = _methods_adapter.validate_python(data if isinstance(data, list) else [])
        # Cache em Redis
        await self._store(account_id, methods)
        return methods

    async def resolve(self, account_id: str) -> PaymentChoice:
        try:
            methods = await self.list_methods(account_id)
        except (BackendError, ValidationError, RedisError) as exc:
            # Sem lista confiável: força cartão novo
            logger.warning("payment methods unavailable for %s, forcing new card: %s", account_id, exc)
            methods = []
        return PaymentChoice.from_methods(methods)
