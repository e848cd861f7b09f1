"""
SQLAlchemy models for the Coworking Check-in server.

Tables:
- Student: registered students, identified by their 5-digit access code
- Plan: purchasable memberships with optional schedule constraints
- Session: one check-in to check-out interval of a student
- PaymentRecord: a plan purchase, paid through the gateway or in person
- Notification: messages for a student about their payments
"""
from datetime import datetime, timezone

from database import db


def utcnow():
    """Naive UTC timestamp, the form every datetime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class Student(db.Model):
    """A registered student. The access code is their identity."""
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    access_code = db.Column(db.String(5), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    institution = db.Column(db.String(150), nullable=True)
    career = db.Column(db.String(150), nullable=True)
    classification = db.Column(db.String(20), nullable=False)
    plan_id = db.Column(db.Integer, nullable=True)
    plan_start = db.Column(db.DateTime, nullable=True)
    plan_end = db.Column(db.DateTime, nullable=True)
    minutes_used = db.Column(db.Integer, nullable=False, default=0)
    certificate_submitted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.CheckConstraint('minutes_used >= 0', name='ck_students_minutes_used'),
    )

    def has_active_plan(self, at=None):
        if self.plan_id is None or not self.plan_start or not self.plan_end:
            return False
        at = at or utcnow()
        return self.plan_start <= at <= self.plan_end

    def to_dict(self):
        return {
            'id': self.id,
            'access_code': self.access_code,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'institution': self.institution,
            'career': self.career,
            'classification': self.classification,
            'plan_id': self.plan_id,
            'plan_start': _iso(self.plan_start),
            'plan_end': _iso(self.plan_end),
            'plan_active': self.has_active_plan(),
            'minutes_used': self.minutes_used,
            'certificate_submitted': self.certificate_submitted,
            'created_at': _iso(self.created_at),
        }


class Plan(db.Model):
    """A membership plan. Defined by staff, never mutated by purchases."""
    __tablename__ = 'plans'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    price = db.Column(db.Float, nullable=False)
    description = db.Column(db.Text, nullable=True)
    classification = db.Column(db.String(20), nullable=True)
    days = db.Column(db.String(20), nullable=False, default='')  # ISO weekdays, e.g. "1,2,3,4,5"
    start_hour = db.Column(db.String(5), nullable=True)  # HH:MM
    end_hour = db.Column(db.String(5), nullable=True)
    duration_days = db.Column(db.Integer, nullable=False, default=30)

    __table_args__ = (
        db.CheckConstraint('price > 0', name='ck_plans_price_positive'),
    )

    @property
    def weekdays(self):
        return {int(d) for d in self.days.split(',') if d.strip()}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': self.price,
            'description': self.description,
            'classification': self.classification,
            'days': sorted(self.weekdays),
            'start_hour': self.start_hour,
            'end_hour': self.end_hour,
            'duration_days': self.duration_days,
        }


class Session(db.Model):
    """One check-in to check-out interval. Open while checked_out_at is null."""
    __tablename__ = 'sessions'

    id = db.Column(db.Integer, primary_key=True)
    student_code = db.Column(db.String(5), nullable=False, index=True)
    checked_in_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    checked_out_at = db.Column(db.DateTime, nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)

    __table_args__ = (
        # A student can hold a single open session
        db.Index(
            'uq_sessions_open_per_student', 'student_code', unique=True,
            sqlite_where=db.text('checked_out_at IS NULL'),
            postgresql_where=db.text('checked_out_at IS NULL'),
        ),
        db.CheckConstraint(
            'checked_out_at IS NULL OR checked_out_at >= checked_in_at',
            name='ck_sessions_checkout_after_checkin',
        ),
    )

    @property
    def is_open(self):
        return self.checked_out_at is None

    def to_dict(self):
        return {
            'id': self.id,
            'student_code': self.student_code,
            'checked_in_at': _iso(self.checked_in_at),
            'checked_out_at': _iso(self.checked_out_at),
            'duration_minutes': self.duration_minutes,
            'is_open': self.is_open,
        }


class PaymentRecord(db.Model):
    """A plan purchase. Status moves pending -> confirmed | failed, never back."""
    __tablename__ = 'payments'

    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_FAILED = 'failed'

    METHOD_GATEWAY = 'gateway'
    METHOD_IN_PERSON = 'in_person'

    id = db.Column(db.Integer, primary_key=True)
    student_code = db.Column(db.String(5), nullable=False, index=True)
    plan_id = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    method = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    external_reference = db.Column(db.String(64), unique=True, nullable=True, index=True)
    gateway_preference_id = db.Column(db.String(100), nullable=True)
    gateway_payment_id = db.Column(db.String(100), nullable=True)
    redirect_url = db.Column(db.String(500), nullable=True)
    failure_reason = db.Column(db.String(200), nullable=True)
    confirmed_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    failed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
        db.CheckConstraint(
            "status IN ('pending', 'confirmed', 'failed')", name='ck_payments_status'
        ),
        db.CheckConstraint(
            "method IN ('gateway', 'in_person')", name='ck_payments_method'
        ),
    )

    def to_dict(self, include_reference=True):
        """Public views (students, kiosk) leave out the gateway correlation ids."""
        data = {
            'id': self.id,
            'student_code': self.student_code,
            'plan_id': self.plan_id,
            'amount': self.amount,
            'method': self.method,
            'status': self.status,
            'external_reference': self.external_reference,
            'redirect_url': self.redirect_url,
            'gateway_payment_id': self.gateway_payment_id,
            'failure_reason': self.failure_reason,
            'confirmed_by': self.confirmed_by,
            'created_at': _iso(self.created_at),
            'confirmed_at': _iso(self.confirmed_at),
            'failed_at': _iso(self.failed_at),
        }
        if not include_reference:
            data.pop('external_reference')
            data.pop('gateway_payment_id')
        return data


class Notification(db.Model):
    """A message for a student, written when a payment settles."""
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    student_code = db.Column(db.String(5), nullable=False, index=True)
    kind = db.Column(db.String(30), nullable=False)  # plan_activated / payment_failed
    title = db.Column(db.String(150), nullable=False)
    message = db.Column(db.Text, nullable=False)
    read = db.Column(db.Boolean, nullable=False, default=False)
    payment_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'student_code': self.student_code,
            'kind': self.kind,
            'title': self.title,
            'message': self.message,
            'read': self.read,
            'payment_id': self.payment_id,
            'created_at': _iso(self.created_at),
        }
