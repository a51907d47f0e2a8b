"""
Database Models

Key Models:
- User: account with free-attempt counter and subscription state
- Assignment: processed submission (belongs to user)
- Payment: Razorpay order lifecycle (belongs to user)
"""
from datetime import datetime, timezone

from solvem8 import db
from solvem8.records import (
    Account,
    DEFAULT_FREE_ATTEMPTS,
    PaymentRecord,
    PaymentStatus,
    PlanType,
    SolveRecord,
    SubscriptionStatus,
    as_utc,
)


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    free_attempts = db.Column(db.Integer, nullable=False, default=DEFAULT_FREE_ATTEMPTS)
    subscription_status = db.Column(db.Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.FREE)
    subscription_expires_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    assignments = db.relationship('Assignment', back_populates='user', lazy='dynamic')
    payments = db.relationship('Payment', back_populates='user', lazy='dynamic')

    def to_record(self) -> Account:
        return Account(
            id=self.id,
            username=self.username,
            email=self.email,
            password_hash=self.password_hash,
            free_attempts=self.free_attempts,
            subscription_status=self.subscription_status,
            subscription_expires_at=as_utc(self.subscription_expires_at),
            created_at=as_utc(self.created_at),
        )


class Assignment(db.Model):
    __tablename__ = 'assignments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(1000), nullable=False, default='')
    processed_output_url = db.Column(db.String(1000))
    attempt_count = db.Column(db.Integer, nullable=False, default=1)
    extracted_text = db.Column(db.Text)
    solution = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    user = db.relationship('User', back_populates='assignments')

    def to_record(self) -> SolveRecord:
        return SolveRecord(
            id=self.id,
            user_id=self.user_id,
            file_name=self.file_name,
            file_url=self.file_url,
            extracted_text=self.extracted_text,
            solution=self.solution,
            processed_output_url=self.processed_output_url,
            attempt_count=self.attempt_count,
            created_at=as_utc(self.created_at),
        )


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default='INR')
    order_id = db.Column(db.String(100), unique=True, nullable=False)
    payment_id = db.Column(db.String(100))
    status = db.Column(db.Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    plan_type = db.Column(db.Enum(PlanType), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user = db.relationship('User', back_populates='payments')

    def to_record(self) -> PaymentRecord:
        return PaymentRecord(
            id=self.id,
            user_id=self.user_id,
            amount=self.amount,
            order_id=self.order_id,
            plan_type=self.plan_type,
            currency=self.currency,
            payment_id=self.payment_id,
            status=self.status,
            created_at=as_utc(self.created_at),
        )
