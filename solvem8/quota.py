"""
Quota gate for AI generation.

Free accounts spend one attempt per successful solve; accounts with an active
subscription are never charged. Expired subscriptions drop back to free the
next time the gate runs.
"""
import logging

from solvem8.errors import QuotaExhausted
from solvem8.records import SubscriptionStatus, utcnow

logger = logging.getLogger(__name__)


def refresh_subscription(storage, account):
    """Downgrade an active subscription whose expiry has passed"""
    if not account.is_subscribed:
        return account
    expires = account.subscription_expires_at
    if expires is None or expires > utcnow():
        return account
    logger.info("Subscription for user %s expired at %s", account.id, expires.isoformat())
    return storage.update_user(account.id, subscription_status=SubscriptionStatus.FREE) or account


def check_quota(storage, account):
    """Raise QuotaExhausted unless the account may run one more generation"""
    account = refresh_subscription(storage, account)
    if not account.is_subscribed and account.free_attempts <= 0:
        raise QuotaExhausted()
    return account


def record_attempt(storage, account):
    """Charge one attempt after a successful generation (free plan only)"""
    if account.is_subscribed:
        return account
    return storage.consume_attempt(account.id) or account
