"""Student directory: registration, access codes, plan windows."""
import re
from datetime import timedelta

import pytest

from errors import Conflict, NotFound, ValidationError
from services.directory import generate_access_code, validate_code


def test_register_hands_out_five_digit_code(services, profile_factory):
    student = services.directory.register(profile_factory(1))

    assert re.match(r'^[0-9]{5}$', student.access_code)
    assert student.minutes_used == 0
    assert student.plan_id is None
    assert student.certificate_submitted is False
    assert student.email == 'student1@example.com'


def test_generated_codes_stay_in_range():
    for _ in range(2000):
        code = generate_access_code()
        assert len(code) == 5
        assert 10000 <= int(code) <= 99999


@pytest.mark.parametrize('field', ['full_name', 'email', 'classification'])
def test_register_requires_field(services, profile_factory, field):
    profile = profile_factory(1, **{field: '   '})
    with pytest.raises(ValidationError):
        services.directory.register(profile)


@pytest.mark.parametrize('fields', [
    {'email': 'not-an-email'},
    {'classification': 'teacher'},
    {'phone': 'call me'},
])
def test_register_rejects_malformed_profile(services, profile_factory, fields):
    with pytest.raises(ValidationError):
        services.directory.register(profile_factory(1, **fields))


def test_register_rejects_duplicate_email(services, profile_factory):
    services.directory.register(profile_factory(1))
    with pytest.raises(Conflict) as excinfo:
        services.directory.register(profile_factory(2, email='STUDENT1@example.com'))
    assert excinfo.value.key == 'email_taken'


def test_repeated_registrations_never_share_a_code(services, profile_factory):
    codes = {services.directory.register(profile_factory(n)).access_code for n in range(150)}
    assert len(codes) == 150


def test_register_regenerates_code_on_collision(services, profile_factory):
    first = services.directory.register(profile_factory(1))
    sequence = iter([first.access_code, first.access_code, '54321'])
    services.directory.code_generator = lambda: next(sequence)

    second = services.directory.register(profile_factory(2))

    assert second.access_code == '54321'


def test_register_gives_up_when_no_code_is_free(services, profile_factory):
    first = services.directory.register(profile_factory(1))
    services.directory.code_generator = lambda: first.access_code
    services.directory.max_attempts = 5

    with pytest.raises(Conflict) as excinfo:
        services.directory.register(profile_factory(2))
    assert excinfo.value.key == 'codes_exhausted'


def test_find_by_code(services, student):
    assert services.directory.find_by_code(student.access_code).email == 'ana@example.com'


def test_find_by_unknown_code_is_not_found(services):
    with pytest.raises(NotFound) as excinfo:
        services.directory.find_by_code('12345')
    assert excinfo.value.key == 'code_not_found'


@pytest.mark.parametrize('code', ['1234', '123456', 'abcde', '', None])
def test_malformed_code_is_rejected(code):
    with pytest.raises(ValidationError):
        validate_code(code)


def test_recover_code_by_email(services, student):
    assert services.directory.recover_code(' ANA@example.com ') == student.access_code
    with pytest.raises(NotFound):
        services.directory.recover_code('nobody@example.com')


def test_mark_certificate_submitted(services, student):
    updated = services.directory.mark_certificate_submitted(student.access_code)
    assert updated.certificate_submitted is True


def test_assign_plan_sets_window(services, student, plan, clock):
    start = clock.now
    end = start + timedelta(days=30)

    updated = services.directory.assign_plan(student.access_code, plan.id, start, end)

    assert updated.plan_id == plan.id
    assert updated.plan_start == start
    assert updated.plan_end == end
    assert updated.has_active_plan(clock.now + timedelta(days=1))
    assert not updated.has_active_plan(end + timedelta(seconds=1))


def test_assign_plan_rejects_overlap_with_active_plan(services, student, plan, clock):
    services.directory.assign_plan(student.access_code, plan.id, clock.now,
                                   clock.now + timedelta(days=30))

    with pytest.raises(Conflict) as excinfo:
        services.directory.assign_plan(student.access_code, plan.id,
                                       clock.now + timedelta(days=10),
                                       clock.now + timedelta(days=40))
    assert excinfo.value.key == 'plan_overlap'


def test_assign_plan_allows_overlap_when_configured(services, student, plan, clock):
    services.directory.allow_overlapping_plans = True
    services.directory.assign_plan(student.access_code, plan.id, clock.now,
                                   clock.now + timedelta(days=30))

    updated = services.directory.assign_plan(student.access_code, plan.id,
                                             clock.now + timedelta(days=10),
                                             clock.now + timedelta(days=40))
    assert updated.plan_end == clock.now + timedelta(days=40)


def test_assign_plan_after_expiry_is_allowed(services, student, plan, clock):
    services.directory.assign_plan(student.access_code, plan.id, clock.now,
                                   clock.now + timedelta(days=1))
    clock.advance(days=2)

    updated = services.directory.assign_plan(student.access_code, plan.id, clock.now,
                                             clock.now + timedelta(days=30))
    assert updated.plan_start == clock.now


def test_assign_plan_validates_window_and_plan(services, student, plan, clock):
    with pytest.raises(ValidationError):
        services.directory.assign_plan(student.access_code, plan.id, clock.now, clock.now)
    with pytest.raises(NotFound) as excinfo:
        services.directory.assign_plan(student.access_code, 999, clock.now,
                                       clock.now + timedelta(days=1))
    assert excinfo.value.key == 'plan_not_found'


def test_extend_plan_keeps_active_plan_running(services, student, plan, clock):
    first = services.directory.extend_plan(student.access_code, plan.id)
    first_start, first_end = first.plan_start, first.plan_end
    assert first_end == clock.now + timedelta(days=30)

    clock.advance(days=5)
    renewed = services.directory.extend_plan(student.access_code, plan.id)

    assert renewed.has_active_plan(clock.now)
    assert renewed.plan_start == first_start
    assert renewed.plan_end == first_end + timedelta(days=30)


def test_extend_plan_after_expiry_starts_now(services, student, plan, clock):
    services.directory.extend_plan(student.access_code, plan.id)
    clock.advance(days=45)

    renewed = services.directory.extend_plan(student.access_code, plan.id)

    assert renewed.plan_start == clock.now
    assert renewed.plan_end == clock.now + timedelta(days=30)


def test_extend_plan_before_a_future_plan_starts(services, student, plan, clock):
    services.directory.assign_plan(student.access_code, plan.id,
                                   clock.now + timedelta(days=3), clock.now + timedelta(days=33))

    renewed = services.directory.extend_plan(student.access_code, plan.id)

    assert renewed.has_active_plan(clock.now)
    assert renewed.plan_start == clock.now
    assert renewed.plan_end == clock.now + timedelta(days=63)
