"""
Razorpay payment routes: create an order, then verify the checkout signature
and credit the account.
"""
from datetime import timedelta

from flask import Blueprint, current_app, jsonify

from solvem8.auth import json_body, with_account
from solvem8.errors import PaymentError
from solvem8.records import PaymentStatus, PlanType, SubscriptionStatus, utcnow
from solvem8.services import razorpay_service
from solvem8.storage import get_storage

payments_bp = Blueprint('payments', __name__, url_prefix='/api/payment')


def apply_plan(storage, account, payment, now=None):
    """Grant what the plan paid for: +N attempts or an N-day subscription"""
    plan = razorpay_service.PLANS[payment.plan_type]
    now = now or utcnow()
    if payment.plan_type == PlanType.MONTHLY:
        return storage.update_user(
            account.id,
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_expires_at=now + timedelta(days=plan.days),
        )
    return storage.update_user(account.id, free_attempts=account.free_attempts + plan.attempts)


@payments_bp.route('/initiate', methods=['POST'])
@with_account
def initiate(account):
    payload = json_body()
    plan = razorpay_service.get_plan(payload.get('plan'))
    if plan is None:
        return jsonify({'message': 'Invalid plan type'}), 400

    order = razorpay_service.create_order(
        plan.amount,
        razorpay_service.DEFAULT_CURRENCY,
        key_id=current_app.config.get('RAZORPAY_KEY_ID', ''),
        key_secret=current_app.config.get('RAZORPAY_KEY_SECRET', ''),
    )

    try:
        get_storage().create_payment(
            user_id=account.id,
            amount=plan.amount,
            order_id=order.id,
            plan_type=plan.plan_type,
            currency=order.currency,
        )
    except Exception:
        current_app.logger.exception('Could not record order %s for user %s', order.id, account.id)
        return jsonify({'message': PaymentError.public_message}), 500

    current_app.logger.info('User %s started %s order %s%s', account.id, plan.plan_type.value,
                            order.id, ' (simulated)' if order.simulated else '')
    return jsonify({
        'message': 'Payment initiated',
        'order_id': order.id,
        'amount': plan.amount,
        'currency': order.currency,
        'key_id': current_app.config.get('RAZORPAY_KEY_ID', ''),
    }), 200


@payments_bp.route('/verify', methods=['POST'])
@with_account
def verify(account):
    payload = json_body()
    payment_id = (payload.get('razorpay_payment_id') or '').strip()
    order_id = (payload.get('razorpay_order_id') or '').strip()
    signature = (payload.get('razorpay_signature') or '').strip()
    if not (payment_id and order_id and signature):
        return jsonify({'message': 'Missing payment details'}), 400

    valid = razorpay_service.verify_signature(
        order_id, payment_id, signature, current_app.config.get('RAZORPAY_KEY_SECRET', ''))
    if not valid:
        current_app.logger.warning('Invalid payment signature for order %s (user %s)', order_id, account.id)
        return jsonify({'message': 'Invalid payment signature'}), 400

    storage = get_storage()
    payment = storage.get_payment_by_order_id(order_id)
    if payment is None or payment.user_id != account.id:
        return jsonify({'message': 'Payment record not found'}), 404

    if payment.status == PaymentStatus.COMPLETED:
        return jsonify({'message': 'Payment already verified', 'status': 'completed'}), 200

    storage.update_payment(payment.id, status=PaymentStatus.COMPLETED, payment_id=payment_id)
    account = apply_plan(storage, account, payment)

    current_app.logger.info('Payment %s verified for user %s (%s)', payment_id, account.id, payment.plan_type.value)
    return jsonify({
        'message': 'Payment verified successfully',
        'status': 'completed',
        'user': account.summary()
    }), 200
