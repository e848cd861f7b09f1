"""
Payment gateway adapter for Mercado Pago Checkout Pro.

The adapter turns a pending PaymentRecord into a hosted-checkout preference
and folds the gateway's asynchronous notifications back into the tracker.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx

from database import db
from errors import (
    GatewayError, InvalidStateTransition, NotFound, UnknownReference, ValidationError,
)
from models import PaymentRecord, Plan, Student

logger = logging.getLogger(__name__)

APPROVED_STATUSES = {'approved', 'authorized'}
FAILED_STATUSES = {'rejected', 'cancelled', 'refunded', 'charged_back'}
PENDING_STATUSES = {'pending', 'in_process', 'in_mediation'}


@dataclass(frozen=True)
class GatewayConfig:
    access_token: str
    base_url: str = 'https://api.mercadopago.com'
    frontend_url: str = 'http://localhost:5173'
    backend_url: str = 'http://localhost:5000'
    timeout: float = 10.0
    currency: str = 'ARS'
    statement_descriptor: str = 'COWORK'
    webhook_secret: str = ''
    sandbox: bool = False

    @classmethod
    def from_mapping(cls, config):
        return cls(
            access_token=config.get('MP_ACCESS_TOKEN', ''),
            base_url=config.get('MP_BASE_URL', cls.base_url).rstrip('/'),
            frontend_url=config.get('FRONTEND_URL', cls.frontend_url).rstrip('/'),
            backend_url=config.get('BACKEND_URL', cls.backend_url).rstrip('/'),
            timeout=float(config.get('GATEWAY_TIMEOUT', cls.timeout)),
            currency=config.get('CURRENCY', cls.currency),
            statement_descriptor=config.get('MP_STATEMENT_DESCRIPTOR', cls.statement_descriptor),
            webhook_secret=config.get('MP_WEBHOOK_SECRET', ''),
            sandbox=bool(config.get('MP_SANDBOX', False)),
        )

    @property
    def configured(self):
        return bool(self.access_token)

    @property
    def notification_url(self):
        return f'{self.backend_url}/api/webhook/mercadopago'


class MercadoPagoClient:
    """Minimal REST client for the two gateway calls the server needs."""

    def __init__(self, config, transport=None):
        self.config = config
        self.transport = transport

    def _client(self):
        return httpx.Client(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            transport=self.transport,
            headers={
                'Authorization': f'Bearer {self.config.access_token}',
                'Content-Type': 'application/json',
            },
        )

    def _request(self, method, path, **kwargs):
        if not self.config.configured:
            raise GatewayError('gateway access token is not configured')
        try:
            with self._client() as client:
                response = client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as exc:
            raise GatewayError(f'gateway timed out on {method} {path}: {exc}')
        except httpx.HTTPStatusError as exc:
            raise GatewayError(
                f'gateway answered {exc.response.status_code} on {method} {path}'
            )
        except httpx.HTTPError as exc:
            raise GatewayError(f'gateway unreachable on {method} {path}: {exc}')
        except ValueError as exc:
            raise GatewayError(f'gateway sent malformed JSON on {method} {path}: {exc}')

    def create_preference(self, body, idempotency_key=None):
        headers = {'X-Idempotency-Key': idempotency_key} if idempotency_key else None
        return self._request('POST', '/checkout/preferences', json=body, headers=headers)

    def get_payment(self, payment_id):
        return self._request('GET', f'/v1/payments/{payment_id}')


@dataclass
class CallbackResult:
    """What handle_callback did with one notification."""
    outcome: str  # confirmed / failed / pending / ignored / unknown_reference
    external_reference: Optional[str] = None
    payment_id: Optional[int] = None
    status: Optional[str] = None
    detail: str = ''

    def to_dict(self):
        return {
            'outcome': self.outcome,
            'external_reference': self.external_reference,
            'payment_id': self.payment_id,
            'status': self.status,
        }


class PaymentGatewayAdapter:

    def __init__(self, tracker, client, config):
        self.tracker = tracker
        self.client = client
        self.config = config

    def create_preference(self, payment):
        """Return the hosted-checkout URL for a pending gateway payment."""
        if payment.method != PaymentRecord.METHOD_GATEWAY:
            raise ValidationError(f'payment {payment.id} is not a gateway payment')
        if payment.status != PaymentRecord.STATUS_PENDING:
            raise InvalidStateTransition(f'payment {payment.id} is {payment.status}')
        if not payment.amount or payment.amount <= 0:
            raise ValidationError(f'payment {payment.id} has no positive amount')

        if payment.redirect_url:
            # A previous attempt already created the preference
            return payment.redirect_url

        student = Student.query.filter_by(access_code=payment.student_code).first()
        plan = db.session.get(Plan, payment.plan_id)
        if not student or not plan:
            raise NotFound(f'payment {payment.id} references a missing student or plan')

        external_reference = payment.external_reference or uuid.uuid4().hex
        body = {
            'items': [{
                'id': f'plan-{plan.id}',
                'title': f'Plan {plan.name} - {student.full_name}',
                'description': plan.description or f'Suscripción al plan {plan.name}',
                'quantity': 1,
                'unit_price': float(payment.amount),
                'currency_id': self.config.currency,
            }],
            'payer': {'email': student.email, 'name': student.full_name},
            'back_urls': {
                'success': f'{self.config.frontend_url}/payment/success',
                'failure': f'{self.config.frontend_url}/payment/failure',
                'pending': f'{self.config.frontend_url}/payment/pending',
            },
            'auto_return': 'approved',
            'notification_url': self.config.notification_url,
            'external_reference': external_reference,
            'statement_descriptor': self.config.statement_descriptor,
        }

        logger.info("[PAY] Creating preference for payment %s (%s)", payment.id, external_reference)
        response = self.client.create_preference(body, idempotency_key=external_reference)
        if not isinstance(response, dict):
            raise GatewayError('gateway preference response is not an object')

        redirect_url = response.get('init_point')
        if self.config.sandbox:
            redirect_url = response.get('sandbox_init_point') or redirect_url
        if not redirect_url or not response.get('id'):
            raise GatewayError(f'gateway preference for payment {payment.id} has no redirect URL')

        self.tracker.attach_preference(payment.id, external_reference,
                                       str(response['id']), redirect_url)
        logger.info("[PAY] Preference %s ready for payment %s", response['id'], payment.id)
        return redirect_url

    def handle_callback(self, payload):
        """
        Apply one gateway notification. Never raises for unknown references
        or already-settled payments: those are logged and acknowledged.
        """
        if not isinstance(payload, dict):
            raise ValidationError('callback payload must be an object')

        topic = payload.get('type') or payload.get('topic')
        data = payload.get('data') if isinstance(payload.get('data'), dict) else {}

        if payload.get('external_reference'):
            reference = str(payload['external_reference'])
            status = str(payload.get('status') or '').lower()
            gateway_payment_id = payload.get('payment_id') or data.get('id')
            amount = payload.get('transaction_amount')
            detail = payload.get('status_detail') or status
        elif topic and data.get('id'):
            if topic != 'payment':
                logger.info("[WEBHOOK] Ignoring %s notification", topic)
                return CallbackResult(outcome='ignored', detail=f'topic {topic}')
            gateway_payment_id = str(data['id'])
            info = self.client.get_payment(gateway_payment_id)
            if not isinstance(info, dict):
                raise GatewayError(f'gateway payment {gateway_payment_id} is not an object')
            reference = info.get('external_reference')
            status = str(info.get('status') or '').lower()
            amount = info.get('transaction_amount')
            detail = info.get('status_detail') or status
        else:
            raise ValidationError('callback has neither external_reference nor type/data.id')

        try:
            return self._apply(reference, status, gateway_payment_id, amount, detail)
        except UnknownReference as exc:
            logger.warning("[WEBHOOK] UnknownReference: %s", exc.detail)
            return CallbackResult(outcome='unknown_reference', external_reference=reference,
                                  status=status, detail=exc.detail)
        except InvalidStateTransition as exc:
            logger.warning("[WEBHOOK] InvalidStateTransition: %s", exc.detail)
            return CallbackResult(outcome='ignored', external_reference=reference,
                                  status=status, detail=exc.detail)

    def _apply(self, reference, status, gateway_payment_id, amount, detail):
        if not reference:
            raise UnknownReference('callback carries no external reference')
        try:
            record = self.tracker.find_by_reference(reference)
        except NotFound:
            raise UnknownReference(f'no payment with external reference {reference!r}')

        if status in APPROVED_STATUSES:
            record = self.tracker.confirm_gateway_payment(
                reference,
                gateway_payment_id=str(gateway_payment_id) if gateway_payment_id else None,
                amount=amount,
            )
            outcome = 'confirmed'
        elif status in FAILED_STATUSES:
            record = self.tracker.mark_failed(reference, detail)
            outcome = 'failed'
        elif status in PENDING_STATUSES:
            outcome = 'pending'
        else:
            logger.warning("[WEBHOOK] Unhandled gateway status %r for %s", status, reference)
            outcome = 'ignored'

        logger.info("[WEBHOOK] %s -> %s (payment %s)", reference, outcome, record.id)
        return CallbackResult(outcome=outcome, external_reference=reference,
                              payment_id=record.id, status=status)

    def check_configuration(self):
        return {
            'configured': self.config.configured,
            'base_url': self.config.base_url,
            'notification_url': self.config.notification_url,
            'frontend_url': self.config.frontend_url,
            'sandbox': self.config.sandbox,
            'signature_verification': bool(self.config.webhook_secret),
        }
