"""
Record storage.

`Storage` is the repository interface used by the request layer. Two
backings are provided:
- MemStorage: dicts keyed by auto-incrementing ids, lives as long as the process
- SqlStorage: Flask-SQLAlchemy tables from solvem8.models

The app factory attaches one instance to the app (see init_storage) and
handlers fetch it with get_storage(); nothing here is a module-level global.

Known gaps:
- MemStorage does not enforce username/email uniqueness; callers check
  before insert, so two concurrent signups with the same email can both land.
- No multi-record transactions. Callers run fetch/insert/update in sequence
  and must tolerate partial completion.
"""
import dataclasses
import threading
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import func, update
from werkzeug.security import generate_password_hash

from solvem8.records import (
    Account,
    DEFAULT_FREE_ATTEMPTS,
    PaymentRecord,
    PaymentStatus,
    PlanType,
    SolveRecord,
    SubscriptionStatus,
    utcnow,
)

STORAGE_EXTENSION_KEY = "solvem8_storage"


class Storage:
    """Repository interface for accounts, assignments and payments"""

    # Users
    def get_user(self, user_id: int) -> Optional[Account]:
        raise NotImplementedError

    def get_user_by_username(self, username: str) -> Optional[Account]:
        raise NotImplementedError

    def get_user_by_email(self, email: str) -> Optional[Account]:
        raise NotImplementedError

    def create_user(self, username: str, email: str, password: str) -> Account:
        raise NotImplementedError

    def update_user(self, user_id: int, **updates) -> Optional[Account]:
        raise NotImplementedError

    def consume_attempt(self, user_id: int) -> Optional[Account]:
        """Decrement free_attempts by one if the account is on the free plan
        and has attempts left. Never goes below zero."""
        raise NotImplementedError

    # Assignments
    def get_assignment(self, assignment_id: int) -> Optional[SolveRecord]:
        raise NotImplementedError

    def get_assignment_history(self, user_id: int) -> List[SolveRecord]:
        raise NotImplementedError

    def create_assignment(self, user_id: int, file_name: str, file_url: str = "",
                          extracted_text: Optional[str] = None, solution: Optional[str] = None,
                          processed_output_url: Optional[str] = None, attempt_count: int = 1) -> SolveRecord:
        raise NotImplementedError

    def update_assignment(self, assignment_id: int, **updates) -> Optional[SolveRecord]:
        raise NotImplementedError

    # Payments
    def create_payment(self, user_id: int, amount: int, order_id: str, plan_type: PlanType,
                       currency: str = "INR", status: PaymentStatus = PaymentStatus.PENDING,
                       payment_id: Optional[str] = None) -> PaymentRecord:
        raise NotImplementedError

    def get_payment_by_order_id(self, order_id: str) -> Optional[PaymentRecord]:
        raise NotImplementedError

    def update_payment(self, record_id: int, **updates) -> Optional[PaymentRecord]:
        raise NotImplementedError


def _merge(record, updates):
    fields = {f.name for f in dataclasses.fields(record)}
    unknown = set(updates) - fields
    if unknown:
        raise TypeError(f"Unknown fields for {type(record).__name__}: {sorted(unknown)}")
    return dataclasses.replace(record, **updates)


class MemStorage(Storage):
    """In-memory storage implementation"""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[int, Account] = {}
        self._assignments: Dict[int, SolveRecord] = {}
        self._payments: Dict[int, PaymentRecord] = {}
        self._next_user_id = 1
        self._next_assignment_id = 1
        self._next_payment_id = 1

    @staticmethod
    def _copy(record):
        return dataclasses.replace(record) if record is not None else None

    def _snapshot(self, table):
        with self._lock:
            return list(table.values())

    # Users
    def get_user(self, user_id):
        return self._copy(self._users.get(user_id))

    def get_user_by_username(self, username):
        needle = (username or "").lower()
        for user in self._snapshot(self._users):
            if user.username.lower() == needle:
                return self._copy(user)
        return None

    def get_user_by_email(self, email):
        needle = (email or "").lower()
        for user in self._snapshot(self._users):
            if user.email.lower() == needle:
                return self._copy(user)
        return None

    def create_user(self, username, email, password):
        with self._lock:
            user = Account(
                id=self._next_user_id,
                username=username,
                email=email,
                password_hash=generate_password_hash(password),
                free_attempts=DEFAULT_FREE_ATTEMPTS,
                subscription_status=SubscriptionStatus.FREE,
                created_at=utcnow(),
            )
            self._users[user.id] = user
            self._next_user_id += 1
        return self._copy(user)

    def update_user(self, user_id, **updates):
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            user = _merge(user, updates)
            self._users[user_id] = user
        return self._copy(user)

    def consume_attempt(self, user_id):
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            if user.subscription_status == SubscriptionStatus.FREE and user.free_attempts > 0:
                user = dataclasses.replace(user, free_attempts=user.free_attempts - 1)
                self._users[user_id] = user
        return self._copy(user)

    # Assignments
    def get_assignment(self, assignment_id):
        return self._copy(self._assignments.get(assignment_id))

    def get_assignment_history(self, user_id):
        rows = [a for a in self._snapshot(self._assignments) if a.user_id == user_id]
        rows.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        return [self._copy(a) for a in rows]

    def create_assignment(self, user_id, file_name, file_url="", extracted_text=None, solution=None,
                          processed_output_url=None, attempt_count=1):
        with self._lock:
            record = SolveRecord(
                id=self._next_assignment_id,
                user_id=user_id,
                file_name=file_name,
                file_url=file_url or "",
                extracted_text=extracted_text,
                solution=solution,
                processed_output_url=processed_output_url,
                attempt_count=attempt_count,
                created_at=utcnow(),
            )
            self._assignments[record.id] = record
            self._next_assignment_id += 1
        return self._copy(record)

    def update_assignment(self, assignment_id, **updates):
        with self._lock:
            record = self._assignments.get(assignment_id)
            if record is None:
                return None
            record = _merge(record, updates)
            self._assignments[assignment_id] = record
        return self._copy(record)

    # Payments
    def create_payment(self, user_id, amount, order_id, plan_type, currency="INR",
                       status=PaymentStatus.PENDING, payment_id=None):
        with self._lock:
            record = PaymentRecord(
                id=self._next_payment_id,
                user_id=user_id,
                amount=amount,
                order_id=order_id,
                plan_type=plan_type,
                currency=currency,
                payment_id=payment_id,
                status=status,
                created_at=utcnow(),
            )
            self._payments[record.id] = record
            self._next_payment_id += 1
        return self._copy(record)

    def get_payment_by_order_id(self, order_id):
        for payment in self._snapshot(self._payments):
            if payment.order_id == order_id:
                return self._copy(payment)
        return None

    def update_payment(self, record_id, **updates):
        with self._lock:
            record = self._payments.get(record_id)
            if record is None:
                return None
            record = _merge(record, updates)
            self._payments[record_id] = record
        return self._copy(record)


class SqlStorage(Storage):
    """Flask-SQLAlchemy storage implementation (needs an app context)"""

    def __init__(self, db):
        self.db = db

    def _apply(self, row, updates):
        for key in updates:
            if key == "id" or not hasattr(type(row), key):
                raise TypeError(f"Unknown field for {type(row).__name__}: {key}")
        for key, value in updates.items():
            setattr(row, key, value)
        self._commit()
        return row.to_record()

    def _commit(self):
        try:
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise

    # Users
    def get_user(self, user_id):
        from solvem8.models import User
        row = self.db.session.get(User, user_id)
        return row.to_record() if row else None

    def get_user_by_username(self, username):
        from solvem8.models import User
        row = User.query.filter(func.lower(User.username) == (username or "").lower()).first()
        return row.to_record() if row else None

    def get_user_by_email(self, email):
        from solvem8.models import User
        row = User.query.filter(func.lower(User.email) == (email or "").lower()).first()
        return row.to_record() if row else None

    def create_user(self, username, email, password):
        from solvem8.models import User
        row = User(
            username=username,
            email=email,
            password_hash=generate_password_hash(password),
            free_attempts=DEFAULT_FREE_ATTEMPTS,
            subscription_status=SubscriptionStatus.FREE,
        )
        self.db.session.add(row)
        self._commit()
        return row.to_record()

    def update_user(self, user_id, **updates):
        from solvem8.models import User
        row = self.db.session.get(User, user_id)
        if row is None:
            return None
        return self._apply(row, updates)

    def consume_attempt(self, user_id):
        from solvem8.models import User
        self.db.session.execute(
            update(User)
            .where(
                User.id == user_id,
                User.subscription_status == SubscriptionStatus.FREE,
                User.free_attempts > 0,
            )
            .values(free_attempts=User.free_attempts - 1)
        )
        self._commit()
        return self.get_user(user_id)

    # Assignments
    def get_assignment(self, assignment_id):
        from solvem8.models import Assignment
        row = self.db.session.get(Assignment, assignment_id)
        return row.to_record() if row else None

    def get_assignment_history(self, user_id):
        from solvem8.models import Assignment
        rows = (Assignment.query
                .filter_by(user_id=user_id)
                .order_by(Assignment.created_at.desc(), Assignment.id.desc())
                .all())
        return [row.to_record() for row in rows]

    def create_assignment(self, user_id, file_name, file_url="", extracted_text=None, solution=None,
                          processed_output_url=None, attempt_count=1):
        from solvem8.models import Assignment
        row = Assignment(
            user_id=user_id,
            file_name=file_name,
            file_url=file_url or "",
            extracted_text=extracted_text,
            solution=solution,
            processed_output_url=processed_output_url,
            attempt_count=attempt_count,
        )
        self.db.session.add(row)
        self._commit()
        return row.to_record()

    def update_assignment(self, assignment_id, **updates):
        from solvem8.models import Assignment
        row = self.db.session.get(Assignment, assignment_id)
        if row is None:
            return None
        return self._apply(row, updates)

    # Payments
    def create_payment(self, user_id, amount, order_id, plan_type, currency="INR",
                       status=PaymentStatus.PENDING, payment_id=None):
        from solvem8.models import Payment
        row = Payment(
            user_id=user_id,
            amount=amount,
            order_id=order_id,
            plan_type=plan_type,
            currency=currency,
            status=status,
            payment_id=payment_id,
        )
        self.db.session.add(row)
        self._commit()
        return row.to_record()

    def get_payment_by_order_id(self, order_id):
        from solvem8.models import Payment
        row = Payment.query.filter_by(order_id=order_id).first()
        return row.to_record() if row else None

    def update_payment(self, record_id, **updates):
        from solvem8.models import Payment
        row = self.db.session.get(Payment, record_id)
        if row is None:
            return None
        return self._apply(row, updates)


def init_storage(app, storage: Optional[Storage] = None) -> Storage:
    """Attach a storage backend to the app according to STORAGE_BACKEND"""
    if storage is None:
        backend = (app.config.get("STORAGE_BACKEND") or "sql").strip().lower()
        if backend == "memory":
            storage = MemStorage()
        elif backend == "sql":
            from solvem8 import db
            import solvem8.models  # noqa: F401  (register tables)
            storage = SqlStorage(db)
        else:
            raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")
    app.extensions[STORAGE_EXTENSION_KEY] = storage
    app.logger.info("Record storage: %s", type(storage).__name__)
    return storage


def get_storage() -> Storage:
    return current_app.extensions[STORAGE_EXTENSION_KEY]
