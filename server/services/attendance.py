"""
Attendance state machine: check-in / check-out toggling and status reports.

A student is CHECKED_IN while they hold an open session in the ledger and
CHECKED_OUT otherwise. Toggles for one code are serialized by a per-code lock
and backed by the ledger's single-open-session index.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import update

from database import db
from errors import AccessDenied
from models import Plan, Student, utcnow

logger = logging.getLogger(__name__)

CHECKED_IN = 'CHECKED_IN'
CHECKED_OUT = 'CHECKED_OUT'


@dataclass
class ToggleResult:
    state: str
    session_id: int
    student: Student
    duration_minutes: Optional[int] = None


@dataclass
class StatusReport:
    state: str
    student: Student
    plan: Optional[Plan]
    session_id: Optional[int] = None
    checked_in_at: Optional[datetime] = None
    elapsed: Optional[timedelta] = None

    @property
    def elapsed_minutes(self):
        if self.elapsed is None:
            return None
        return int(self.elapsed.total_seconds() // 60)

    def to_dict(self):
        return {
            'state': self.state,
            'access_code': self.student.access_code,
            'full_name': self.student.full_name,
            'session_id': self.session_id,
            'checked_in_at': self.checked_in_at.isoformat() if self.checked_in_at else None,
            'elapsed_seconds': int(self.elapsed.total_seconds()) if self.elapsed is not None else None,
            'minutes_used': self.student.minutes_used,
            'plan': self.plan.to_dict() if self.plan else None,
            'plan_end': self.student.plan_end.isoformat() if self.student.plan_end else None,
            'plan_active': self.student.has_active_plan(),
        }


def session_minutes(checked_in_at, checked_out_at):
    return max(0, round((checked_out_at - checked_in_at).total_seconds() / 60))


class AccessPolicy:
    """
    Optional gate applied on check-in only; leaving is never blocked.

    require_active_plan: the student must hold a plan whose window covers now.
    enforce_schedule: now (in the space's timezone) must fall within the
    plan's weekdays and HH:MM window.
    """

    def __init__(self, require_active_plan=False, enforce_schedule=False, timezone_name='UTC'):
        self.require_active_plan = require_active_plan
        self.enforce_schedule = enforce_schedule
        self.tz = timezone.utc if timezone_name in (None, '', 'UTC') else ZoneInfo(timezone_name)

    def check_entry(self, student, plan, now):
        if self.require_active_plan and not student.has_active_plan(now):
            raise AccessDenied(f'student {student.access_code} has no active plan',
                               key='no_active_plan')
        if self.enforce_schedule and plan is not None:
            local = now.replace(tzinfo=timezone.utc).astimezone(self.tz)
            if plan.weekdays and local.isoweekday() not in plan.weekdays:
                raise AccessDenied(f'plan {plan.name} not valid on weekday {local.isoweekday()}',
                                   key='outside_schedule',
                                   start=plan.start_hour or '-', end=plan.end_hour or '-')
            if plan.start_hour and plan.end_hour:
                current = local.strftime('%H:%M')
                if not (plan.start_hour <= current <= plan.end_hour):
                    raise AccessDenied(f'{current} outside {plan.start_hour}-{plan.end_hour}',
                                       key='outside_schedule',
                                       start=plan.start_hour, end=plan.end_hour)


class AttendanceStateMachine:

    def __init__(self, directory, ledger, locks, policy=None, clock=utcnow):
        self.directory = directory
        self.ledger = ledger
        self.locks = locks
        self.policy = policy or AccessPolicy()
        self.clock = clock

    def toggle(self, code):
        """Check the student in if they have no open session, out otherwise."""
        student = self.directory.find_by_code(code)

        with self.locks.hold(f'student:{code}'):
            now = self.clock()
            open_session = self.ledger.find_open(code)

            if open_session is None:
                plan = db.session.get(Plan, student.plan_id) if student.plan_id else None
                self.policy.check_entry(student, plan, now)
                session = self.ledger.open_session(code, now)
                logger.info("Check-in %s (session %s)", code, session.id)
                return ToggleResult(state=CHECKED_IN, session_id=session.id, student=student)

            checked_out_at = max(now, open_session.checked_in_at)
            minutes = session_minutes(open_session.checked_in_at, checked_out_at)
            session = self.ledger.close_session(open_session.id, checked_out_at, minutes,
                                                commit=False)
            db.session.execute(
                update(Student)
                .where(Student.access_code == code)
                .values(minutes_used=Student.minutes_used + minutes)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            logger.info("Check-out %s (session %s, %d min)", code, session.id, minutes)
            return ToggleResult(state=CHECKED_OUT, session_id=session.id,
                                student=self.directory.find_by_code(code),
                                duration_minutes=minutes)

    def get_status(self, code):
        student = self.directory.find_by_code(code)
        plan = db.session.get(Plan, student.plan_id) if student.plan_id else None
        open_session = self.ledger.find_open(code)

        if open_session is None:
            return StatusReport(state=CHECKED_OUT, student=student, plan=plan)

        elapsed = max(timedelta(0), self.clock() - open_session.checked_in_at)
        return StatusReport(
            state=CHECKED_IN,
            student=student,
            plan=plan,
            session_id=open_session.id,
            checked_in_at=open_session.checked_in_at,
            elapsed=elapsed,
        )
