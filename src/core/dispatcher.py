"""
Life Admin — Notification Dispatcher.

Delivers push alerts to an owner's current subscription:

- no subscription  → no-op
- permanent failure → the subscription is purged so later sweeps stop trying
- transient failure → logged and dropped; the next scheduled sweep re-detects
  whatever condition still holds, so there is no retry queue
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from src.ports.notification_port import DeliveryResult

if TYPE_CHECKING:
    from src.data.db import SubscriptionDB
    from src.data.models import PushSubscription
    from src.ports.notification_port import PushTransport

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Routes payloads to the push transport and keeps subscriptions healthy."""

    def __init__(self, subscriptions: SubscriptionDB, transport: PushTransport) -> None:
        self._subscriptions = subscriptions
        self._transport = transport

    async def subscribe(self, owner_id: int, destination: dict) -> PushSubscription:
        """Register (or replace) the owner's push destination."""
        return await asyncio.to_thread(self._subscriptions.upsert, owner_id, destination)

    async def unsubscribe(self, owner_id: int) -> bool:
        return await asyncio.to_thread(self._subscriptions.delete, owner_id)

    async def deliver(self, owner_id: int, payload: dict) -> DeliveryResult | None:
        """Send one payload to the owner. Returns None when the owner has no subscription."""
        subscription = await asyncio.to_thread(self._subscriptions.get, owner_id)
        if subscription is None:
            logger.debug("No push subscription for owner %d, skipping", owner_id)
            return None

        try:
            result = await self._transport.send(subscription.destination, payload)
        except Exception as exc:
            logger.warning("Push delivery to owner %d raised: %s", owner_id, exc)
            return DeliveryResult.TRANSIENT_FAILURE

        if result is DeliveryResult.PERMANENT_FAILURE:
            await asyncio.to_thread(self._subscriptions.delete, owner_id)
            logger.info("Purged invalid push subscription for owner %d", owner_id)
        elif result is DeliveryResult.TRANSIENT_FAILURE:
            logger.warning("Push delivery to owner %d failed, will retry next sweep", owner_id)
        else:
            logger.info("Push notification sent to owner %d", owner_id)
        return result

    async def broadcast(
        self, owner_ids: list[int], payload: dict,
    ) -> dict[int, DeliveryResult | None]:
        """Deliver the same payload to many owners independently."""
        results = await asyncio.gather(
            *(self.deliver(owner_id, payload) for owner_id in owner_ids),
            return_exceptions=True,
        )
        outcome: dict[int, DeliveryResult | None] = {}
        for owner_id, result in zip(owner_ids, results):
            if isinstance(result, Exception):
                logger.error("Broadcast to owner %d failed: %s", owner_id, result)
                outcome[owner_id] = DeliveryResult.TRANSIENT_FAILURE
            else:
                outcome[owner_id] = result
        return outcome
