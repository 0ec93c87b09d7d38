import datetime as dt
import json
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class SubscriptionSideEffects:
    """
    What a committed subscription triggers outside the flow: dropping cached
    subscription / payment-method data and telling the rest of the app.
    """

    def __init__(self, redis: Redis, subscription_prefix: str = "sub", payment_methods_prefix: str = "pm", channel: str = "billing-events"):
        self.redis = redis
        self.subscription_prefix = subscription_prefix
        self.payment_methods_prefix = payment_methods_prefix
        self.channel = channel

    async def invalidate(self, account_id: str) -> None:
        await self.redis.delete(
            f"{self.subscription_prefix}:{account_id}",
            f"{self.payment_methods_prefix}:{account_id}",
        )

    async def notify(self, account_id: str, event: str, data: dict) -> None:
        message = {
            "event": event,
            "account_id": account_id,
            "at": dt.datetime.now(dt.timezone.utc).isoformat(),
            **data,
        }
        await self.redis.publish(self.channel, json.dumps(message, default=str))

    async def subscription_committed(self, account_id: str, data: dict) -> None:
        # A assinatura já foi criada; falha aqui não pode desfazer o SUCCESS
        try:
            await self.invalidate(account_id)
            await self.notify(account_id, "subscription.changed", data)
        except RedisError:
            logger.exception("post-commit side effects failed for account %s", account_id)
