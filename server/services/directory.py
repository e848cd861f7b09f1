"""
Student directory: registration, lookup by access code, plan assignment.
"""
import logging
import re
import secrets
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from database import db
from errors import Conflict, NotFound, ValidationError
from models import Plan, Student, utcnow

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r'^[0-9]{5}$')
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
PHONE_PATTERN = re.compile(r'^\+?[0-9 ()-]{6,20}$')
CLASSIFICATIONS = ('student', 'professional')


def generate_access_code():
    """Random code in 10000..99999 (90,000 values, never a leading zero)."""
    return str(10000 + secrets.randbelow(90000))


def validate_code(code):
    if not isinstance(code, str) or not CODE_PATTERN.match(code):
        raise ValidationError(f'malformed access code {code!r}', key='invalid_code')
    return code


def _clean(value):
    return value.strip() if isinstance(value, str) else ''


class StudentDirectory:
    """Owns Student records. All mutations go through these methods."""

    def __init__(self, locks, code_generator=generate_access_code, max_attempts=50,
                 allow_overlapping_plans=False, clock=utcnow):
        self.locks = locks
        self.code_generator = code_generator
        self.max_attempts = max_attempts
        self.allow_overlapping_plans = allow_overlapping_plans
        self.clock = clock

    def register(self, profile):
        """
        Create a student from a registration form and hand out a fresh code.

        Required: full_name, email, classification. Optional: phone,
        institution, career.
        """
        if not isinstance(profile, dict):
            raise ValidationError('profile must be an object')

        full_name = _clean(profile.get('full_name'))
        email = _clean(profile.get('email')).lower()
        classification = _clean(profile.get('classification')).lower()
        phone = _clean(profile.get('phone'))

        missing = [name for name, value in (
            ('full_name', full_name), ('email', email), ('classification', classification)
        ) if not value]
        if missing:
            raise ValidationError(f"missing fields: {', '.join(missing)}")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError(f'malformed email {email!r}')
        if classification not in CLASSIFICATIONS:
            raise ValidationError(f'unknown classification {classification!r}')
        if phone and not PHONE_PATTERN.match(phone):
            raise ValidationError(f'malformed phone {phone!r}')

        if Student.query.filter_by(email=email).first():
            raise Conflict(f'email {email} already registered', key='email_taken')

        for attempt in range(self.max_attempts):
            code = self.code_generator()
            if Student.query.filter_by(access_code=code).first():
                logger.debug("Access code collision on attempt %d", attempt + 1)
                continue

            student = Student(
                access_code=code,
                full_name=full_name,
                email=email,
                phone=phone or None,
                institution=_clean(profile.get('institution')) or None,
                career=_clean(profile.get('career')) or None,
                classification=classification,
                minutes_used=0,
                certificate_submitted=False,
            )
            db.session.add(student)
            try:
                db.session.commit()
            except IntegrityError:
                # A concurrent registration took the code or the email
                db.session.rollback()
                if Student.query.filter_by(email=email).first():
                    raise Conflict(f'email {email} already registered', key='email_taken')
                continue

            logger.info("Registered student %s (%s)", code, email)
            return student

        raise Conflict(f'no free access code after {self.max_attempts} attempts',
                       key='codes_exhausted')

    def find_by_code(self, code):
        validate_code(code)
        student = Student.query.filter_by(access_code=code).first()
        if not student:
            raise NotFound(f'student {code}', key='code_not_found')
        return student

    def recover_code(self, email):
        email = _clean(email).lower()
        if not email:
            raise ValidationError('email is required')
        student = Student.query.filter_by(email=email).first()
        if not student:
            raise NotFound(f'student with email {email}', key='email_not_found')
        return student.access_code

    def list_students(self):
        return Student.query.order_by(Student.access_code).all()

    def mark_certificate_submitted(self, code):
        with self.locks.hold(f'student:{code}'):
            student = self.find_by_code(code)
            student.certificate_submitted = True
            db.session.commit()
            return student

    def assign_plan(self, code, plan_id, start, end):
        """Set the plan window of a student."""
        with self.locks.hold(f'student:{code}'):
            student = self.find_by_code(code)
            plan = self._get_plan(plan_id)
            return self._apply_plan(student, plan, start, end)

    def extend_plan(self, code, plan_id, duration_days=None):
        """
        Give the student `plan_id` for `duration_days` (default: the plan's).

        A student without a current plan gets [now, now + duration). A renewal
        while a plan has not ended keeps the earlier of its start and now, and
        pushes the end out by the duration, so access is never interrupted.
        """
        with self.locks.hold(f'student:{code}'):
            student = self.find_by_code(code)
            plan = self._get_plan(plan_id)
            now = self.clock()
            duration = timedelta(days=duration_days or plan.duration_days)

            if student.plan_id is not None and student.plan_end and student.plan_end > now:
                start = min(student.plan_start or now, now)
                end = student.plan_end + duration
                return self._apply_plan(student, plan, start, end, renewal=True)
            return self._apply_plan(student, plan, now, now + duration)

    def _get_plan(self, plan_id):
        plan = db.session.get(Plan, plan_id) if plan_id is not None else None
        if not plan:
            raise NotFound(f'plan {plan_id}', key='plan_not_found')
        return plan

    def _apply_plan(self, student, plan, start, end, renewal=False):
        if start is None or end is None or end <= start:
            raise ValidationError('plan end must be after plan start')

        now = self.clock()
        current_active = student.plan_id is not None and student.plan_end and student.plan_end > now
        overlaps = current_active and start < student.plan_end and end > (student.plan_start or start)
        if overlaps and not renewal and not self.allow_overlapping_plans:
            raise Conflict(
                f'student {student.access_code} has an active plan until {student.plan_end}',
                key='plan_overlap',
            )

        student.plan_id = plan.id
        student.plan_start = start
        student.plan_end = end
        db.session.commit()
        logger.info("Assigned plan %s to %s (%s -> %s)", plan.name, student.access_code, start, end)
        return student
