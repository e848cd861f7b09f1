"""Plan purchases and payment confirmation."""
import threading
from datetime import timedelta

import pytest

from database import db
from errors import InvalidStateTransition, NotFound, ValidationError
from models import Notification, PaymentRecord
from services.attendance import CHECKED_IN, AccessPolicy
from services.payments import normalize_method


def _gateway_payment(services, student, plan, reference='ref-0001'):
    record = services.tracker.request_purchase(student.access_code, plan.id, 'gateway')
    return services.tracker.attach_preference(record.id, reference, 'pref-1',
                                              'https://checkout.test/pref-1')


def test_request_purchase_creates_pending_record(services, student, plan):
    record = services.tracker.request_purchase(student.access_code, plan.id, 'gateway')

    assert record.status == PaymentRecord.STATUS_PENDING
    assert record.method == PaymentRecord.METHOD_GATEWAY
    assert record.amount == 18000
    assert record.student_code == student.access_code
    assert record.external_reference is None


def test_request_purchase_unknown_student_or_plan(services, student, plan):
    with pytest.raises(NotFound) as excinfo:
        services.tracker.request_purchase('12345', plan.id, 'gateway')
    assert excinfo.value.key == 'code_not_found'

    with pytest.raises(NotFound) as excinfo:
        services.tracker.request_purchase(student.access_code, 999, 'gateway')
    assert excinfo.value.key == 'plan_not_found'
    assert PaymentRecord.query.count() == 0


def test_request_purchase_validates_method_and_amount(services, student, plan):
    with pytest.raises(ValidationError):
        services.tracker.request_purchase(student.access_code, plan.id, 'bitcoin')
    with pytest.raises(ValidationError):
        services.tracker.request_purchase(student.access_code, plan.id, 'gateway', amount=100)
    with pytest.raises(ValidationError):
        services.tracker.request_purchase(student.access_code, plan.id, 'gateway', amount='cheap')

    record = services.tracker.request_purchase(student.access_code, plan.id, 'in_person',
                                               amount='18000')
    assert record.method == PaymentRecord.METHOD_IN_PERSON


@pytest.mark.parametrize('label, expected', [
    ('Mercado Pago Hospedado', PaymentRecord.METHOD_GATEWAY),
    ('mercadopago', PaymentRecord.METHOD_GATEWAY),
    ('Pago en Recepción', PaymentRecord.METHOD_IN_PERSON),
    ('in-person', PaymentRecord.METHOD_IN_PERSON),
])
def test_normalize_method_accepts_labels(label, expected):
    assert normalize_method(label) == expected


def test_gateway_confirmation_activates_plan(services, student, plan, clock):
    _gateway_payment(services, student, plan)

    record = services.tracker.confirm_gateway_payment('ref-0001', gateway_payment_id='987')

    assert record.status == PaymentRecord.STATUS_CONFIRMED
    assert record.gateway_payment_id == '987'
    assert record.confirmed_at == clock.now
    refreshed = services.directory.find_by_code(student.access_code)
    assert refreshed.plan_id == plan.id
    assert refreshed.plan_start == clock.now
    assert refreshed.plan_end == clock.now + timedelta(days=30)
    assert refreshed.has_active_plan(clock.now)


def test_confirmation_is_idempotent(services, student, plan, clock):
    _gateway_payment(services, student, plan)
    services.tracker.confirm_gateway_payment('ref-0001')
    snapshot = services.directory.find_by_code(student.access_code).to_dict()

    clock.advance(hours=2)
    again = services.tracker.confirm_gateway_payment('ref-0001')

    assert again.status == PaymentRecord.STATUS_CONFIRMED
    assert services.directory.find_by_code(student.access_code).to_dict() == snapshot
    assert Notification.query.filter_by(kind='plan_activated').count() == 1


def test_confirmed_payment_never_fails(services, student, plan, clock):
    _gateway_payment(services, student, plan)
    services.tracker.confirm_gateway_payment('ref-0001')

    with pytest.raises(InvalidStateTransition):
        services.tracker.mark_failed('ref-0001', 'rejected')

    assert services.tracker.find_by_reference('ref-0001').status == PaymentRecord.STATUS_CONFIRMED


def test_failed_payment_never_confirms(services, student, plan, clock):
    _gateway_payment(services, student, plan)
    failed = services.tracker.mark_failed('ref-0001', 'cc_rejected_insufficient_amount')

    assert failed.status == PaymentRecord.STATUS_FAILED
    assert failed.failure_reason == 'cc_rejected_insufficient_amount'
    with pytest.raises(InvalidStateTransition):
        services.tracker.confirm_gateway_payment('ref-0001')
    assert services.directory.find_by_code(student.access_code).plan_id is None


def test_marking_failed_twice_is_a_no_op(services, student, plan, clock):
    _gateway_payment(services, student, plan)
    services.tracker.mark_failed('ref-0001', 'rejected')
    services.tracker.mark_failed('ref-0001', 'cancelled')

    record = services.tracker.find_by_reference('ref-0001')
    assert record.failure_reason == 'rejected'
    assert Notification.query.filter_by(kind='payment_failed').count() == 1


def test_unknown_reference_is_not_found(services):
    with pytest.raises(NotFound):
        services.tracker.confirm_gateway_payment('nope')
    with pytest.raises(NotFound):
        services.tracker.mark_failed('nope')


def test_in_person_confirmation(services, student, plan, clock):
    record = services.tracker.request_purchase(student.access_code, plan.id, 'in_person')

    confirmed = services.tracker.confirm_in_person_payment(record.id, 'Lucía')
    again = services.tracker.confirm_in_person_payment(record.id, 'Marcos')

    assert confirmed.status == PaymentRecord.STATUS_CONFIRMED
    assert again.confirmed_by == 'Lucía'
    assert services.directory.find_by_code(student.access_code).has_active_plan(clock.now)


def test_in_person_confirmation_rejects_gateway_payments(services, student, plan):
    record = services.tracker.request_purchase(student.access_code, plan.id, 'gateway')

    with pytest.raises(ValidationError):
        services.tracker.confirm_in_person_payment(record.id, 'Lucía')
    with pytest.raises(ValidationError):
        services.tracker.confirm_in_person_payment(record.id, '')
    with pytest.raises(NotFound):
        services.tracker.confirm_in_person_payment(999, 'Lucía')


def test_renewal_keeps_access_while_extending(services, student, plan, clock):
    services.attendance.policy = AccessPolicy(require_active_plan=True)
    first = services.tracker.request_purchase(student.access_code, plan.id, 'in_person')
    services.tracker.confirm_in_person_payment(first.id, 'Lucía')
    current = services.directory.find_by_code(student.access_code)
    first_start, first_end = current.plan_start, current.plan_end

    clock.advance(days=10)
    second = services.tracker.request_purchase(student.access_code, plan.id, 'in_person')
    services.tracker.confirm_in_person_payment(second.id, 'Lucía')

    renewed = services.directory.find_by_code(student.access_code)
    assert renewed.has_active_plan(clock.now)
    assert renewed.plan_start == first_start
    assert renewed.plan_end == first_end + timedelta(days=30)
    assert services.attendance.toggle(student.access_code).state == CHECKED_IN


def test_confirmation_leaves_notification(services, student, plan, clock):
    _gateway_payment(services, student, plan)
    services.tracker.confirm_gateway_payment('ref-0001')

    notifications = services.tracker.notifications_for(student.access_code)
    assert len(notifications) == 1
    assert notifications[0].title == 'Plan activated!'
    assert 'Full Time' in notifications[0].message


def test_attach_preference_requires_pending(services, student, plan, clock):
    record = _gateway_payment(services, student, plan)
    services.tracker.confirm_gateway_payment('ref-0001')

    with pytest.raises(InvalidStateTransition):
        services.tracker.attach_preference(record.id, 'ref-0002', 'pref-2', 'https://x.test')


def test_list_payments_filters(services, student, plan):
    services.tracker.request_purchase(student.access_code, plan.id, 'gateway')
    in_person = services.tracker.request_purchase(student.access_code, plan.id, 'in_person')
    services.tracker.confirm_in_person_payment(in_person.id, 'Lucía')

    assert len(services.tracker.list_payments()) == 2
    assert [p.id for p in services.tracker.list_payments(status='confirmed')] == [in_person.id]
    assert services.tracker.list_payments(code='99999') == []


def _race(app, workers, action):
    barrier = threading.Barrier(workers)
    outcomes = []

    def worker(n):
        with app.app_context():
            barrier.wait()
            try:
                outcomes.append(action(n))
            except InvalidStateTransition:
                outcomes.append('rejected')
            except Exception as exc:
                outcomes.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    db.session.rollback()
    return outcomes


def test_concurrent_deliveries_confirm_once(app, services, student, plan, clock):
    _gateway_payment(services, student, plan)
    start = clock.now

    outcomes = _race(app, 6, lambda n: services.tracker.confirm_gateway_payment('ref-0001').status)

    assert outcomes == [PaymentRecord.STATUS_CONFIRMED] * 6
    assert services.tracker.find_by_reference('ref-0001').status == PaymentRecord.STATUS_CONFIRMED
    assert Notification.query.filter_by(kind='plan_activated').count() == 1
    refreshed = services.directory.find_by_code(student.access_code)
    assert refreshed.plan_end == start + timedelta(days=30)


def test_confirm_racing_failure_settles_one_way(app, services, student, plan, clock):
    _gateway_payment(services, student, plan)
    start = clock.now

    def action(n):
        if n % 2:
            return services.tracker.mark_failed('ref-0001', 'rejected').status
        return services.tracker.confirm_gateway_payment('ref-0001').status

    outcomes = _race(app, 6, action)

    assert not [o for o in outcomes if isinstance(o, Exception)]
    final = services.tracker.find_by_reference('ref-0001').status
    assert final in (PaymentRecord.STATUS_CONFIRMED, PaymentRecord.STATUS_FAILED)
    assert set(outcomes) == {final, 'rejected'}
    activated = Notification.query.filter_by(kind='plan_activated').count()
    failed = Notification.query.filter_by(kind='payment_failed').count()
    student_now = services.directory.find_by_code(student.access_code)
    if final == PaymentRecord.STATUS_CONFIRMED:
        assert (activated, failed) == (1, 0)
        assert student_now.plan_end == start + timedelta(days=30)
    else:
        assert (activated, failed) == (0, 1)
        assert student_now.plan_id is None
