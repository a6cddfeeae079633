"""
engine/payments.py: Telegram Stars purchases: premium plans and identity reveal.
Invoice payloads: "premium_<days>" and "reveal_<partner_id>".
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .match_engine import MatchEngine
from .models import UserRef

log = logging.getLogger(__name__)

DAY = 86400
# days -> price in Stars
PREMIUM_PLANS: Dict[int, int] = {1: 10, 7: 30, 30: 50}
REVEAL_PRICE = 10


@dataclass(frozen=True)
class Purchase:
    kind: str  # "premium" | "reveal"
    value: int  # days for premium, partner id for reveal


def premium_payload(days: int) -> str:
    return f"premium_{days}"


def reveal_payload(partner_id: int) -> str:
    return f"reveal_{partner_id}"


def parse_payload(payload: Optional[str]) -> Optional[Purchase]:
    if not payload or "_" not in payload:
        return None
    kind, _, raw = payload.partition("_")
    if kind not in ("premium", "reveal"):
        return None
    try:
        return Purchase(kind, int(raw))
    except ValueError:
        return None


def extend_premium(days: int, now: float) -> Callable[[UserRef], None]:
    """Mutator: add days on top of a still-running premium, else start from now."""
    def _apply(u: UserRef) -> None:
        base = u.premium_expires_at if u.premium_active(now) else now
        u.is_premium = True
        u.premium_expires_at = base + days * DAY
    return _apply


class PaymentEvents:
    def __init__(self, engine: MatchEngine, plans: Optional[Dict[int, int]] = None, reveal_price: int = REVEAL_PRICE):
        self.engine = engine
        self.store = engine.store
        self.plans = dict(plans or PREMIUM_PLANS)
        self.reveal_price = reveal_price

    def price_of(self, purchase: Purchase) -> Optional[int]:
        if purchase.kind == "premium":
            return self.plans.get(purchase.value)
        return self.reveal_price

    async def validate_checkout(self, user_id: int, payload: str, amount: int) -> Optional[str]:
        """Error code for the pre-checkout answer, or None when the purchase may proceed."""
        purchase = parse_payload(payload)
        if purchase is None:
            return "unknown_payload"
        price = self.price_of(purchase)
        if price is None:
            return "unknown_plan"
        if amount != price:
            return "wrong_amount"
        if await self.store.get(user_id) is None:
            return "not_registered"
        if purchase.kind == "reveal" and self.engine.partner_of(user_id) != purchase.value:
            return "session_ended"
        return None

    async def on_premium_purchased(self, user_id: int, days: int, amount_paid: int, now: Optional[float] = None,
                                   charge_id: str = "") -> Optional[UserRef]:
        now = self.engine.clock() if now is None else now
        user = await self.store.update(user_id, extend_premium(days, now))
        if user is None:
            log.warning("[pay] premium for unknown user %s (%s days, %s paid)", user_id, days, amount_paid)
            return None
        await self.store.record_purchase(user_id, "premium", amount_paid, days, charge_id, user.premium_expires_at)
        log.info("[pay] premium %s days for %s, paid %s, until %s", days, user_id, amount_paid, user.premium_expires_at)
        return user

    async def on_identity_reveal_purchased(self, user_id: int, partner_id: int,
                                           charge_id: str = "") -> Optional[Tuple[UserRef, UserRef]]:
        if self.engine.partner_of(user_id) != partner_id:
            log.info("[pay] reveal %s -> %s refused: session no longer active", user_id, partner_id)
            return None
        user = await self.store.get(user_id)
        partner = await self.store.get(partner_id)
        if user is None or partner is None or self.engine.partner_of(user_id) != partner_id:
            return None
        await self.store.record_purchase(user_id, "reveal", self.reveal_price, 0, charge_id)
        log.info("[pay] identities revealed %s <-> %s", user_id, partner_id)
        return user, partner
