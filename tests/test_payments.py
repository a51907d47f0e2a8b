"""
Payment Tests
"""
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from solvem8.payments import apply_plan
from solvem8.records import PaymentStatus, PlanType, SubscriptionStatus
from solvem8.services import razorpay_service

SECRET = 'test-razorpay-secret'


def sign(order_id, payment_id, secret=SECRET):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


class TestSignature:

    def test_valid_signature(self):
        assert razorpay_service.verify_signature('o1', 'p1', sign('o1', 'p1'), SECRET) is True

    def test_any_single_character_mutation_fails(self):
        good = sign('o1', 'p1')
        for i, ch in enumerate(good):
            replacement = '0' if ch != '0' else '1'
            mutated = good[:i] + replacement + good[i + 1:]
            assert razorpay_service.verify_signature('o1', 'p1', mutated, SECRET) is False

    def test_signature_bound_to_ids(self):
        assert razorpay_service.verify_signature('o1', 'p2', sign('o1', 'p1'), SECRET) is False
        assert razorpay_service.verify_signature('o2', 'p1', sign('o1', 'p1'), SECRET) is False

    def test_wrong_secret(self):
        assert razorpay_service.verify_signature('o1', 'p1', sign('o1', 'p1', 'other'), SECRET) is False

    def test_missing_secret_rejects_everything(self):
        assert razorpay_service.verify_signature('o1', 'p1', sign('o1', 'p1', ''), '') is False

    def test_non_ascii_signature(self):
        assert razorpay_service.verify_signature('o1', 'p1', 'ü' * 64, SECRET) is False


class TestOrders:

    def test_plans(self):
        assert razorpay_service.get_plan('monthly').amount == 19900
        assert razorpay_service.get_plan('monthly').days == 30
        assert razorpay_service.get_plan('PACK').attempts == 20
        assert razorpay_service.get_plan('yearly') is None
        assert razorpay_service.get_plan(None) is None

    def test_order_without_credentials_is_simulated(self, caplog):
        with caplog.at_level('WARNING'):
            order = razorpay_service.create_order(19900)

        assert order.simulated is True
        assert order.id.startswith(razorpay_service.SIMULATED_ORDER_PREFIX)
        assert order.amount == 19900
        assert order.currency == 'INR'
        assert 'SIMULATED ORDER' in caplog.text

    def test_gateway_error_falls_back(self, monkeypatch):
        def fail(data):
            raise ConnectionError('gateway unreachable')

        client = SimpleNamespace(order=SimpleNamespace(create=fail))
        monkeypatch.setattr(razorpay_service, 'get_client', lambda key_id, key_secret: client)

        order = razorpay_service.create_order(29900, key_id='rzp_test', key_secret='secret')
        assert order.simulated is True

    def test_gateway_order(self, monkeypatch):
        captured = {}

        def create(data):
            captured.update(data)
            return {'id': 'order_gw_1', 'amount': data['amount'], 'currency': data['currency']}

        client = SimpleNamespace(order=SimpleNamespace(create=create))
        monkeypatch.setattr(razorpay_service, 'get_client', lambda key_id, key_secret: client)

        order = razorpay_service.create_order(29900, key_id='rzp_test', key_secret='secret')
        assert order.id == 'order_gw_1'
        assert order.simulated is False
        assert captured['amount'] == 29900
        assert captured['receipt'].startswith('receipt_')


class TestApplyPlan:

    @pytest.mark.parametrize('prior', [0, 1, 3, 57])
    def test_pack_adds_exactly_twenty(self, storage, test_user, prior):
        user = storage.update_user(test_user.id, free_attempts=prior)
        payment = storage.create_payment(user_id=user.id, amount=29900, order_id=f'o{prior}',
                                         plan_type=PlanType.PACK)

        updated = apply_plan(storage, user, payment)
        assert updated.free_attempts == prior + 20
        assert updated.subscription_status == SubscriptionStatus.FREE
        assert updated.subscription_expires_at is None

    def test_monthly_activates_for_thirty_days(self, storage, test_user):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        payment = storage.create_payment(user_id=test_user.id, amount=19900, order_id='o1',
                                         plan_type=PlanType.MONTHLY)

        updated = apply_plan(storage, test_user, payment, now=now)
        assert updated.subscription_status == SubscriptionStatus.ACTIVE
        assert updated.subscription_expires_at == now + timedelta(days=30)
        assert updated.free_attempts == test_user.free_attempts


class TestPaymentEndpoints:

    def test_initiate_requires_auth(self, client):
        response = client.post('/api/payment/initiate', json={'plan': 'pack'})
        assert response.status_code == 401

    def test_initiate_invalid_plan(self, authenticated_client):
        response = authenticated_client.post('/api/payment/initiate', json={'plan': 'lifetime'})
        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'Invalid plan type'

    def test_initiate_creates_pending_payment(self, authenticated_client, storage, test_user):
        response = authenticated_client.post('/api/payment/initiate', json={'plan': 'pack'})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['amount'] == 29900
        assert data['currency'] == 'INR'

        payment = storage.get_payment_by_order_id(data['order_id'])
        assert payment.user_id == test_user.id
        assert payment.status == PaymentStatus.PENDING
        assert payment.plan_type == PlanType.PACK
        assert payment.payment_id is None

    def _initiate(self, client, plan):
        response = client.post('/api/payment/initiate', json={'plan': plan})
        return json.loads(response.data)['order_id']

    def test_verify_pack(self, authenticated_client, storage, test_user):
        order_id = self._initiate(authenticated_client, 'pack')

        response = authenticated_client.post('/api/payment/verify', json={
            'razorpay_order_id': order_id,
            'razorpay_payment_id': 'pay_123',
            'razorpay_signature': sign(order_id, 'pay_123'),
        })

        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'completed'
        assert storage.get_user(test_user.id).free_attempts == 23

        payment = storage.get_payment_by_order_id(order_id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.payment_id == 'pay_123'

    def test_verify_monthly(self, authenticated_client, storage, test_user):
        order_id = self._initiate(authenticated_client, 'monthly')
        before = datetime.now(timezone.utc)

        response = authenticated_client.post('/api/payment/verify', json={
            'razorpay_order_id': order_id,
            'razorpay_payment_id': 'pay_456',
            'razorpay_signature': sign(order_id, 'pay_456'),
        })
        after = datetime.now(timezone.utc)

        assert response.status_code == 200
        user = storage.get_user(test_user.id)
        assert user.subscription_status == SubscriptionStatus.ACTIVE
        assert before + timedelta(days=30) <= user.subscription_expires_at <= after + timedelta(days=30)

    def test_verify_twice_credits_once(self, authenticated_client, storage, test_user):
        order_id = self._initiate(authenticated_client, 'pack')
        body = {
            'razorpay_order_id': order_id,
            'razorpay_payment_id': 'pay_123',
            'razorpay_signature': sign(order_id, 'pay_123'),
        }

        assert authenticated_client.post('/api/payment/verify', json=body).status_code == 200
        assert authenticated_client.post('/api/payment/verify', json=body).status_code == 200
        assert storage.get_user(test_user.id).free_attempts == 23

    def test_verify_bad_signature(self, authenticated_client, storage, test_user):
        order_id = self._initiate(authenticated_client, 'pack')

        response = authenticated_client.post('/api/payment/verify', json={
            'razorpay_order_id': order_id,
            'razorpay_payment_id': 'pay_123',
            'razorpay_signature': 'deadbeef',
        })

        assert response.status_code == 400
        assert storage.get_user(test_user.id).free_attempts == 3
        assert storage.get_payment_by_order_id(order_id).status == PaymentStatus.PENDING

    def test_verify_unknown_order(self, authenticated_client):
        response = authenticated_client.post('/api/payment/verify', json={
            'razorpay_order_id': 'order_nope',
            'razorpay_payment_id': 'pay_123',
            'razorpay_signature': sign('order_nope', 'pay_123'),
        })
        assert response.status_code == 404

    def test_verify_other_users_order(self, authenticated_client, storage):
        other = storage.create_user('other', 'other@example.com', 'password123')
        storage.create_payment(user_id=other.id, amount=29900, order_id='order_theirs',
                               plan_type=PlanType.PACK)

        response = authenticated_client.post('/api/payment/verify', json={
            'razorpay_order_id': 'order_theirs',
            'razorpay_payment_id': 'pay_123',
            'razorpay_signature': sign('order_theirs', 'pay_123'),
        })
        assert response.status_code == 404
        assert storage.get_user(other.id).free_attempts == 3

    def test_verify_missing_fields(self, authenticated_client):
        response = authenticated_client.post('/api/payment/verify', json={'razorpay_order_id': 'o1'})
        assert response.status_code == 400
