# earnloop/services/fulfillment.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FulfillmentRequest:
    redemption_id: int
    user_id: int
    delivery_email: str | None
    description: str
    value: int  # gift card dollars, or credits spent for store items
    country_code: str | None = None
    source: str = "store"  # "store" | "giveaway_win"


class GiftCardFulfillment(Protocol):
    async def submit(self, request: FulfillmentRequest) -> None: ...


class LoggingFulfillment:
    """
    Default collaborator: logs the hand-off and keeps nothing. Real delivery lives outside the engine.
    """

    async def submit(self, request: FulfillmentRequest) -> None:
        log.info(
            "fulfillment queued redemption=%s user=%s source=%s value=%s",
            request.redemption_id, request.user_id, request.source, request.value,
        )


async def hand_off(fulfillment: GiftCardFulfillment, request: FulfillmentRequest | None) -> bool:
    """
    Called after the owning transaction committed. A failed hand-off leaves the
    redemption pending for retry; it never undoes the committed debit.
    """
    if request is None:
        return False
    try:
        await fulfillment.submit(request)
    except Exception:
        log.exception("fulfillment hand-off failed redemption=%s", request.redemption_id)
        return False
    return True
