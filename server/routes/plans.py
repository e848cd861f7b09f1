"""
Plan routes: public catalog with tier badges, staff plan creation.
"""
from flask import Blueprint, current_app, jsonify, request

from errors import ValidationError
from messages import render
from services.registry import get_services
from utils.security import staff_required

plans_bp = Blueprint('plans', __name__)


@plans_bp.route('/api/plans', methods=['GET'])
def list_plans():
    """All plans, cheapest first, each with its tier label."""
    classification = request.args.get('classification', '').strip().lower() or None
    plans = get_services().catalog.list_with_tiers(classification)
    return jsonify({'plans': plans, 'total': len(plans)}), 200


@plans_bp.route('/api/plans', methods=['POST'])
@staff_required
def create_plan():
    """
    Create a plan.

    Expects JSON:
    {
        "name": "Full Time",
        "price": 18000,
        "description": "Acceso de lunes a viernes",   (optional)
        "classification": "student",                 (optional)
        "days": [1, 2, 3, 4, 5],                      (optional, ISO weekdays)
        "start_hour": "08:00",                       (optional)
        "end_hour": "20:00",                         (optional)
        "duration_days": 30                          (optional)
    }
    """
    data = request.get_json(silent=True)

    if not data:
        raise ValidationError('No data provided')

    plan = get_services().catalog.create_plan(data)
    return jsonify({
        'message': render('plan_created', current_app.config.get('LANGUAGE')),
        'plan': plan.to_dict(),
    }), 201
