"""Razorpay helper functions.

Order creation goes through the Razorpay SDK. If the gateway cannot be
reached (or no credentials are configured) a local order id is synthesized so
the checkout flow still works in development; those orders never collect real
money and are logged at WARNING with the SIMULATED ORDER tag.

Signature verification is HMAC-SHA256 over "order_id|payment_id". Without a
configured secret every signature is rejected.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Optional

from solvem8.records import PlanType

try:
    import razorpay
except Exception:
    razorpay = None

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "INR"
SIMULATED_ORDER_PREFIX = "order_local_"


@dataclass(frozen=True)
class Plan:
    plan_type: PlanType
    amount: int  # minor units (paise)
    attempts: int = 0
    days: int = 0


PLANS: Dict[PlanType, Plan] = {
    PlanType.MONTHLY: Plan(PlanType.MONTHLY, amount=19900, days=30),
    PlanType.PACK: Plan(PlanType.PACK, amount=29900, attempts=20),
}


@dataclass
class Order:
    id: str
    amount: int
    currency: str
    simulated: bool = False


def get_plan(name: Optional[str]) -> Optional[Plan]:
    try:
        return PLANS[PlanType((name or "").strip().lower())]
    except ValueError:
        return None


def get_client(key_id: str, key_secret: str):
    if razorpay is None or not key_id or not key_secret:
        return None
    return razorpay.Client(auth=(key_id, key_secret))


def simulate_order(amount: int, currency: str, reason: str) -> Order:
    order_id = f"{SIMULATED_ORDER_PREFIX}{int(time.time() * 1000)}_{os.urandom(3).hex()}"
    logger.warning("SIMULATED ORDER %s for %d %s (%s); no payment will be collected",
                   order_id, amount, currency, reason)
    return Order(id=order_id, amount=amount, currency=currency, simulated=True)


def create_order(amount: int, currency: str = DEFAULT_CURRENCY,
                 key_id: str = "", key_secret: str = "") -> Order:
    """Create a gateway order, degrading to a simulated one on any failure."""
    client = get_client(key_id, key_secret)
    if client is None:
        reason = "razorpay SDK not installed" if razorpay is None else "credentials not configured"
        return simulate_order(amount, currency, reason)

    try:
        data = client.order.create(data={
            "amount": amount,
            "currency": currency,
            "receipt": f"receipt_{int(time.time() * 1000)}",
        })
        return Order(id=data["id"], amount=int(data.get("amount", amount)),
                     currency=data.get("currency", currency))
    except Exception as e:
        logger.error("Razorpay order creation failed: %s: %s", type(e).__name__, e)
        return simulate_order(amount, currency, "gateway error")


def expected_signature(order_id: str, payment_id: str, secret: str) -> str:
    body = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """True only when signature is the hex HMAC-SHA256 of order_id|payment_id."""
    if not secret:
        logger.error("RAZORPAY_KEY_SECRET is not configured; rejecting payment signature for %s", order_id)
        return False
    if not (order_id and payment_id and signature):
        return False
    return hmac.compare_digest(
        expected_signature(order_id, payment_id, secret).encode("utf-8"),
        str(signature).encode("utf-8"),
    )
