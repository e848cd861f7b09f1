"""
Plan & payment tracker: purchase requests and their confirmation.

A PaymentRecord only ever moves pending -> confirmed or pending -> failed.
Every transition runs under a per-payment lock and is written as a
conditional UPDATE on status = 'pending', so a duplicate or racing callback
can never apply twice.
"""
import logging

from sqlalchemy import update

from database import db
from errors import CoworkError, InvalidStateTransition, NotFound, ValidationError
from messages import render
from models import Notification, PaymentRecord, utcnow

logger = logging.getLogger(__name__)

METHOD_ALIASES = {
    'gateway': PaymentRecord.METHOD_GATEWAY,
    'mercadopago': PaymentRecord.METHOD_GATEWAY,
    'mercado pago hospedado': PaymentRecord.METHOD_GATEWAY,
    'in_person': PaymentRecord.METHOD_IN_PERSON,
    'in-person': PaymentRecord.METHOD_IN_PERSON,
    'reception': PaymentRecord.METHOD_IN_PERSON,
    'pago en recepción': PaymentRecord.METHOD_IN_PERSON,
}


def normalize_method(method):
    key = (method or '').strip().lower()
    if key not in METHOD_ALIASES:
        raise ValidationError(f'unknown payment method {method!r}')
    return METHOD_ALIASES[key]


class PlanPaymentTracker:

    def __init__(self, directory, catalog, locks, language=None, clock=utcnow):
        self.directory = directory
        self.catalog = catalog
        self.locks = locks
        self.language = language
        self.clock = clock

    # ─── Lookups ────────────────────────────────────────────

    def get_payment(self, payment_id):
        record = db.session.get(PaymentRecord, payment_id) if payment_id is not None else None
        if not record:
            raise NotFound(f'payment {payment_id}', key='payment_not_found')
        return record

    def find_by_reference(self, external_reference):
        record = None
        if external_reference:
            record = PaymentRecord.query.filter_by(external_reference=str(external_reference)).first()
        if not record:
            raise NotFound(f'payment with reference {external_reference!r}', key='payment_not_found')
        return record

    def list_payments(self, status=None, code=None):
        query = PaymentRecord.query
        if status:
            query = query.filter_by(status=status)
        if code:
            query = query.filter_by(student_code=code)
        return query.order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc()).all()

    def notifications_for(self, code):
        return (Notification.query.filter_by(student_code=code)
                .order_by(Notification.created_at.desc(), Notification.id.desc()).all())

    # ─── Purchase ───────────────────────────────────────────

    def request_purchase(self, code, plan_id, method, amount=None):
        method = normalize_method(method)
        student = self.directory.find_by_code(code)
        plan = self.catalog.get_plan(plan_id)

        if amount is not None:
            try:
                amount = float(amount)
            except (TypeError, ValueError):
                raise ValidationError(f'amount must be numeric, got {amount!r}')
            if abs(amount - plan.price) > 0.005:
                raise ValidationError(f'amount {amount} does not match plan price {plan.price}')

        record = PaymentRecord(
            student_code=student.access_code,
            plan_id=plan.id,
            amount=plan.price,
            method=method,
            status=PaymentRecord.STATUS_PENDING,
        )
        db.session.add(record)
        db.session.commit()
        logger.info("[PAY] Purchase requested: payment %s, %s -> %s (%s)",
                    record.id, code, plan.name, method)
        return record

    def attach_preference(self, payment_id, external_reference, preference_id, redirect_url):
        """Store the gateway preference on a pending record."""
        with self.locks.hold(f'payment:{payment_id}'):
            result = db.session.execute(
                update(PaymentRecord)
                .where(PaymentRecord.id == payment_id,
                       PaymentRecord.status == PaymentRecord.STATUS_PENDING)
                .values(external_reference=external_reference,
                        gateway_preference_id=preference_id,
                        redirect_url=redirect_url)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                raise InvalidStateTransition(f'payment {payment_id} is no longer pending')
            db.session.commit()
            return db.session.get(PaymentRecord, payment_id, populate_existing=True)

    # ─── Transitions ────────────────────────────────────────

    def confirm_gateway_payment(self, external_reference, gateway_payment_id=None, amount=None):
        record = self.find_by_reference(external_reference)
        if amount is not None and abs(float(amount) - record.amount) > 0.005:
            logger.warning("[PAY] Gateway amount %s differs from payment %s amount %s",
                           amount, record.id, record.amount)
        return self._confirm(record, PaymentRecord.METHOD_GATEWAY,
                             gateway_payment_id=gateway_payment_id)

    def confirm_in_person_payment(self, payment_id, staff_actor):
        if not staff_actor:
            raise ValidationError('staff actor is required')
        record = self.get_payment(payment_id)
        return self._confirm(record, PaymentRecord.METHOD_IN_PERSON, confirmed_by=staff_actor)

    def mark_failed(self, external_reference, reason=None):
        record = self.find_by_reference(external_reference)

        with self.locks.hold(f'payment:{record.id}'):
            db.session.refresh(record)
            if record.status == PaymentRecord.STATUS_FAILED:
                logger.debug("[PAY] Payment %s already failed", record.id)
                return record
            if record.status == PaymentRecord.STATUS_CONFIRMED:
                raise InvalidStateTransition(f'payment {record.id} is confirmed, cannot fail')

            reason = (reason or 'rejected')[:200]
            applied = self._transition(record.id, PaymentRecord.STATUS_FAILED,
                                       failed_at=self.clock(), failure_reason=reason)
            if not applied:
                return self._settled_by_other(record, PaymentRecord.STATUS_FAILED)

            self._notify(record, 'payment_failed', reason=reason)
            db.session.commit()
            logger.info("[PAY] Payment %s failed: %s", record.id, reason)
            return db.session.get(PaymentRecord, record.id, populate_existing=True)

    def _confirm(self, record, method, **values):
        if record.method != method:
            raise ValidationError(f'payment {record.id} is a {record.method} payment')

        with self.locks.hold(f'payment:{record.id}'):
            db.session.refresh(record)
            if record.status == PaymentRecord.STATUS_CONFIRMED:
                logger.debug("[PAY] Payment %s already confirmed", record.id)
                return record
            if record.status == PaymentRecord.STATUS_FAILED:
                raise InvalidStateTransition(f'payment {record.id} failed, cannot confirm')

            applied = self._transition(record.id, PaymentRecord.STATUS_CONFIRMED,
                                       confirmed_at=self.clock(), **values)
            if not applied:
                return self._settled_by_other(record, PaymentRecord.STATUS_CONFIRMED)

            try:
                # Commits the status change together with the plan window
                self._notify(record, 'plan_activated')
                self.directory.extend_plan(record.student_code, record.plan_id)
            except CoworkError:
                db.session.rollback()
                raise
            logger.info("[PAY] Payment %s confirmed, plan %s active for %s",
                        record.id, record.plan_id, record.student_code)
            return db.session.get(PaymentRecord, record.id, populate_existing=True)

    def _transition(self, payment_id, status, **values):
        result = db.session.execute(
            update(PaymentRecord)
            .where(PaymentRecord.id == payment_id,
                   PaymentRecord.status == PaymentRecord.STATUS_PENDING)
            .values(status=status, **{k: v for k, v in values.items() if v is not None})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _settled_by_other(self, record, wanted):
        # Another process moved the record out of pending between our read and write
        db.session.rollback()
        db.session.refresh(record)
        if record.status == wanted:
            return record
        raise InvalidStateTransition(f'payment {record.id} is {record.status}')

    def _notify(self, record, kind, reason=None):
        plan = self.catalog.get_plan(record.plan_id)
        if kind == 'plan_activated':
            title = render('plan_activated_title', self.language)
            body = render('plan_activated_body', self.language, plan=plan.name, amount=record.amount)
        else:
            title = render('payment_failed_title', self.language)
            body = render('payment_failed_body', self.language, plan=plan.name, reason=reason)
        db.session.add(Notification(
            student_code=record.student_code,
            kind=kind,
            title=title,
            message=body,
            payment_id=record.id,
        ))
