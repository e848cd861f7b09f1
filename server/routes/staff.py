"""
Staff routes: front-desk login and the dashboard listings.
"""
from flask import Blueprint, current_app, jsonify, request, session

from errors import ValidationError
from messages import render
from services.registry import get_services
from utils.security import check_staff_password, staff_required

staff_bp = Blueprint('staff', __name__)


@staff_bp.route('/api/staff/login', methods=['POST'])
def staff_login():
    """
    Front-desk login.

    Expects JSON:
    {
        "name": "Lucía",
        "password": "..."
    }
    """
    data = request.get_json(silent=True)
    if not data:
        raise ValidationError('No data provided')

    if not check_staff_password(data.get('password', '')):
        return jsonify({
            'error': render('invalid_password', current_app.config.get('LANGUAGE')),
            'code': 'invalid_password'
        }), 401

    session['is_staff'] = True
    session['staff_name'] = (data.get('name') or 'staff').strip() or 'staff'
    return jsonify({
        'message': render('login_successful', current_app.config.get('LANGUAGE')),
        'authenticated': True
    }), 200


@staff_bp.route('/api/staff/logout', methods=['POST'])
def staff_logout():
    session.pop('is_staff', None)
    session.pop('staff_name', None)
    return jsonify({'message': render('logged_out', current_app.config.get('LANGUAGE'))}), 200


@staff_bp.route('/api/staff/students', methods=['GET'])
@staff_required
def list_students():
    students = get_services().directory.list_students()
    return jsonify({
        'students': [s.to_dict() for s in students],
        'total': len(students)
    }), 200


@staff_bp.route('/api/staff/sessions', methods=['GET'])
@staff_required
def list_sessions():
    """Recent sessions; ?open=1 for the people inside right now."""
    limit = request.args.get('limit', 100, type=int)
    open_only = request.args.get('open', '').lower() in ('1', 'true', 'yes')

    sessions = get_services().ledger.list_sessions(limit=limit, open_only=open_only)
    return jsonify({
        'sessions': [s.to_dict() for s in sessions],
        'total': len(sessions),
        'currently_inside': sum(1 for s in sessions if s.is_open),
    }), 200
