"""
Plan catalog: the memberships staff offer.
"""
import logging
import re

from sqlalchemy.exc import IntegrityError

from database import db
from errors import Conflict, NotFound, ValidationError
from models import Plan
from services.tiers import classify_tier

logger = logging.getLogger(__name__)

HOUR_PATTERN = re.compile(r'^([01][0-9]|2[0-3]):[0-5][0-9]$')


def _parse_days(value):
    if value in (None, '', []):
        return ''
    if isinstance(value, str):
        items = value.split(',')
    elif isinstance(value, (list, tuple)):
        items = list(value)
    elif isinstance(value, int) and not isinstance(value, bool):
        items = [value]
    else:
        raise ValidationError(f'days must be a list of ISO weekday numbers, got {value!r}')
    try:
        days = sorted({int(str(d).strip()) for d in items if str(d).strip()})
    except ValueError:
        raise ValidationError(f'days must be ISO weekday numbers, got {value!r}')
    if any(d < 1 or d > 7 for d in days):
        raise ValidationError(f'days must be between 1 and 7, got {value!r}')
    return ','.join(str(d) for d in days)


class PlanCatalog:

    def __init__(self, default_duration_days=30):
        self.default_duration_days = default_duration_days

    def create_plan(self, data):
        if not isinstance(data, dict):
            raise ValidationError('plan must be an object')

        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('name is required')

        try:
            price = float(data.get('price'))
        except (TypeError, ValueError):
            raise ValidationError('price must be numeric')
        if price <= 0:
            raise ValidationError('price must be positive')

        start_hour = (data.get('start_hour') or '').strip() or None
        end_hour = (data.get('end_hour') or '').strip() or None
        for hour in (start_hour, end_hour):
            if hour and not HOUR_PATTERN.match(hour):
                raise ValidationError(f'hours must be HH:MM, got {hour!r}')
        if bool(start_hour) != bool(end_hour):
            raise ValidationError('start_hour and end_hour go together')
        if start_hour and start_hour >= end_hour:
            raise ValidationError('start_hour must be before end_hour')

        try:
            duration_days = int(data.get('duration_days') or self.default_duration_days)
        except (TypeError, ValueError):
            raise ValidationError('duration_days must be an integer')
        if duration_days <= 0:
            raise ValidationError('duration_days must be positive')

        plan = Plan(
            name=name,
            price=price,
            description=(data.get('description') or '').strip() or None,
            classification=(data.get('classification') or '').strip().lower() or None,
            days=_parse_days(data.get('days')),
            start_hour=start_hour,
            end_hour=end_hour,
            duration_days=duration_days,
        )
        db.session.add(plan)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict(f'plan {name!r} already exists')

        logger.info("Created plan %s (%.2f)", plan.name, plan.price)
        return plan

    def get_plan(self, plan_id):
        plan = db.session.get(Plan, plan_id) if plan_id is not None else None
        if not plan:
            raise NotFound(f'plan {plan_id}', key='plan_not_found')
        return plan

    def list_plans(self, classification=None):
        query = Plan.query
        if classification:
            query = query.filter_by(classification=classification)
        return query.order_by(Plan.price).all()

    def list_with_tiers(self, classification=None):
        plans = self.list_plans(classification)
        return [dict(plan.to_dict(), tier=classify_tier(plan, plans)) for plan in plans]
