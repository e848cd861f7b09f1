"""
Payment routes: purchase requests, gateway preferences, in-person
confirmation and the gateway webhook.
"""
import logging

from flask import Blueprint, current_app, jsonify, request, session

from errors import GatewayError, ValidationError
from messages import render
from models import PaymentRecord
from services.registry import get_services
from utils.security import staff_required, verify_webhook_signature

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__)


def _retry_response(record, error):
    logger.error("[PAY] Preference for payment %s failed: %s", record.id, error.detail)
    return jsonify({
        'error': render('gateway_unavailable', current_app.config.get('LANGUAGE')),
        'code': error.key,
        'retryable': True,
        'payment': record.to_dict(include_reference=False),
    }), 502


def _invalid_signature():
    return jsonify({
        'error': render('invalid_signature', current_app.config.get('LANGUAGE')),
        'code': 'invalid_signature'
    }), 401


@payments_bp.route('/api/payments', methods=['POST'])
def request_purchase():
    """
    A student picks a plan and a payment method.

    Expects JSON:
    {
        "code": "12345",
        "plan_id": 1,
        "method": "gateway",     (gateway / in_person)
        "amount": 18000          (optional, must match the plan price)
    }
    """
    data = request.get_json(silent=True)

    if not data:
        raise ValidationError('No data provided')

    services = get_services()
    language = current_app.config.get('LANGUAGE')
    record = services.tracker.request_purchase(
        str(data.get('code', '')).strip(),
        data.get('plan_id'),
        data.get('method'),
        amount=data.get('amount'),
    )

    if record.method == PaymentRecord.METHOD_IN_PERSON:
        return jsonify({
            'message': render('payment_registered', language),
            'payment': record.to_dict(include_reference=False)
        }), 201

    try:
        redirect_url = services.gateway.create_preference(record)
    except GatewayError as exc:
        return _retry_response(record, exc)

    record = services.tracker.get_payment(record.id)
    return jsonify({
        'message': render('preference_created', language),
        'redirect_url': redirect_url,
        'payment': record.to_dict(include_reference=False)
    }), 201


@payments_bp.route('/api/payments/<int:payment_id>', methods=['GET'])
def get_payment(payment_id):
    record = get_services().tracker.get_payment(payment_id)
    return jsonify({'payment': record.to_dict(include_reference=False)}), 200


@payments_bp.route('/api/payments/<int:payment_id>/preference', methods=['POST'])
def retry_preference(payment_id):
    """Ask the gateway again for a checkout URL of a pending payment."""
    services = get_services()
    record = services.tracker.get_payment(payment_id)

    try:
        redirect_url = services.gateway.create_preference(record)
    except GatewayError as exc:
        return _retry_response(record, exc)

    return jsonify({'redirect_url': redirect_url, 'payment_id': record.id}), 200


@payments_bp.route('/api/payments/<int:payment_id>/confirm', methods=['POST'])
@staff_required
def confirm_in_person(payment_id):
    """Front desk confirms a payment made in person."""
    data = request.get_json(silent=True) or {}
    staff_actor = data.get('staff') or session.get('staff_name') or 'staff'

    record = get_services().tracker.confirm_in_person_payment(payment_id, staff_actor)
    return jsonify({
        'message': render('payment_confirmed', current_app.config.get('LANGUAGE')),
        'payment': record.to_dict()
    }), 200


@payments_bp.route('/api/payments', methods=['GET'])
@staff_required
def list_payments():
    status = request.args.get('status', '').strip() or None
    code = request.args.get('code', '').strip() or None

    records = get_services().tracker.list_payments(status=status, code=code)
    return jsonify({
        'payments': [r.to_dict() for r in records],
        'total': len(records),
        'total_confirmed_amount': sum(r.amount for r in records if r.status == 'confirmed'),
    }), 200


@payments_bp.route('/api/payments/test-config', methods=['GET'])
@staff_required
def test_config():
    """Report how the gateway integration is configured."""
    return jsonify(get_services().gateway.check_configuration()), 200


@payments_bp.route('/api/webhook/mercadopago', methods=['POST'])
def mercadopago_webhook():
    """
    Receive a payment notification from the gateway.

    Unknown references and already-settled payments are acknowledged with 200
    so the gateway stops redelivering them. The direct form, which carries its
    own status, is only accepted with a valid signature; the notification
    form always re-reads the status from the gateway.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise ValidationError('webhook payload must be an object')
    if not payload and request.args.get('data.id'):
        payload = {
            'type': request.args.get('type') or request.args.get('topic'),
            'data': {'id': request.args.get('data.id')},
        }

    services = get_services()
    secret = services.gateway_config.webhook_secret
    if not secret and payload.get('external_reference'):
        logger.warning("[WEBHOOK] Rejected unsigned callback carrying its own status")
        return _invalid_signature()
    if secret:
        data = payload.get('data') if isinstance(payload.get('data'), dict) else {}
        data_id = (payload.get('external_reference')
                   or request.args.get('data.id') or data.get('id'))
        if not verify_webhook_signature(secret, request.headers.get('x-signature'),
                                        request.headers.get('x-request-id'), data_id):
            logger.warning("[WEBHOOK] Rejected callback with an invalid signature")
            return _invalid_signature()

    result = services.gateway.handle_callback(payload)
    return jsonify({
        'message': render('webhook_processed', current_app.config.get('LANGUAGE')),
        'outcome': result.outcome,
        'payment_id': result.payment_id,
        'status': result.status,
    }), 200
