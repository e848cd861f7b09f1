"""
Session ledger: the check-in/check-out history of every student.
"""
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from database import db
from errors import Conflict, InvalidStateTransition, NotFound
from models import Session

logger = logging.getLogger(__name__)


class SessionLedger:
    """Append-only record of sessions. Closing is the only update allowed."""

    def find_open(self, code):
        return Session.query.filter_by(student_code=code, checked_out_at=None).first()

    def open_session(self, code, at):
        session = Session(student_code=code, checked_in_at=at)
        db.session.add(session)
        try:
            db.session.commit()
        except IntegrityError:
            # uq_sessions_open_per_student rejected a second open session
            db.session.rollback()
            raise Conflict(f'student {code} already has an open session',
                           key='session_already_open')
        return session

    def close_session(self, session_id, at, duration_minutes, commit=True):
        """
        Close an open session. Only succeeds while checked_out_at is null.

        With commit=False the caller owns the transaction.
        """
        result = db.session.execute(
            update(Session)
            .where(Session.id == session_id, Session.checked_out_at.is_(None))
            .values(checked_out_at=at, duration_minutes=duration_minutes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            if db.session.get(Session, session_id) is None:
                raise NotFound(f'session {session_id}')
            raise InvalidStateTransition(f'session {session_id} is already closed')
        if commit:
            db.session.commit()
        return db.session.get(Session, session_id, populate_existing=True)

    def history(self, code, limit=50):
        return (Session.query.filter_by(student_code=code)
                .order_by(Session.checked_in_at.desc(), Session.id.desc())
                .limit(limit).all())

    def list_sessions(self, limit=100, open_only=False):
        query = Session.query
        if open_only:
            query = query.filter(Session.checked_out_at.is_(None))
        return query.order_by(Session.checked_in_at.desc(), Session.id.desc()).limit(limit).all()

    def open_count(self, code):
        return Session.query.filter_by(student_code=code, checked_out_at=None).count()
