"""
Record types handed out by the storage layer.

Key records:
- Account: registered user with quota/subscription state
- SolveRecord: one processed assignment and its solution
- PaymentRecord: one purchase attempt and its status
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask_login import UserMixin

DEFAULT_FREE_ATTEMPTS = 3


class SubscriptionStatus(enum.Enum):
    FREE = "free"
    ACTIVE = "active"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class PlanType(enum.Enum):
    MONTHLY = "monthly"
    PACK = "pack"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Account(UserMixin):
    id: int
    username: str
    email: str
    password_hash: str
    free_attempts: int = DEFAULT_FREE_ATTEMPTS
    subscription_status: SubscriptionStatus = SubscriptionStatus.FREE
    subscription_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_subscribed(self) -> bool:
        return self.subscription_status == SubscriptionStatus.ACTIVE

    def summary(self) -> Dict[str, Any]:
        """User summary for API responses (never includes the hash)"""
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'freeAttempts': self.free_attempts,
            'subscriptionStatus': self.subscription_status.value,
            'subscriptionExpiresAt': _iso(self.subscription_expires_at),
        }


@dataclass
class SolveRecord:
    id: int
    user_id: int
    file_name: str
    file_url: str
    extracted_text: Optional[str] = None
    solution: Optional[str] = None
    processed_output_url: Optional[str] = None
    attempt_count: int = 1
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.user_id,
            'fileName': self.file_name,
            'fileUrl': self.file_url,
            'processedOutputUrl': self.processed_output_url,
            'timestamp': _iso(self.created_at),
            'attemptCount': self.attempt_count,
            'extractedText': self.extracted_text,
            'solution': self.solution,
        }


@dataclass
class PaymentRecord:
    id: int
    user_id: int
    amount: int
    order_id: str
    plan_type: PlanType
    currency: str = "INR"
    payment_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    created_at: Optional[datetime] = None
