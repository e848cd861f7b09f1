"""
Check-in routes: toggle attendance with an access code, query status.
"""
from flask import Blueprint, current_app, jsonify, request

from errors import ValidationError
from messages import render
from services.attendance import CHECKED_IN
from services.registry import get_services
from sockets.events import broadcast_attendance

checkin_bp = Blueprint('checkin', __name__)


def toggle_message(result, language):
    name = result.student.full_name
    if result.state == CHECKED_IN:
        return render('welcome', language, name=name)
    return render('goodbye', language, name=name, minutes=result.duration_minutes or 0)


def toggle_payload(result, language):
    return {
        'state': result.state,
        'message': toggle_message(result, language),
        'session_id': result.session_id,
        'duration_minutes': result.duration_minutes,
        'student': {
            'access_code': result.student.access_code,
            'full_name': result.student.full_name,
            'minutes_used': result.student.minutes_used,
        },
    }


@checkin_bp.route('/api/check', methods=['POST'])
def check():
    """
    Check a student in, or out if they are already in.

    Expects JSON:
    {
        "code": "12345"
    }
    """
    data = request.get_json(silent=True)

    if not data:
        raise ValidationError('No data provided')

    code = str(data.get('code', '')).strip()
    result = get_services().attendance.toggle(code)

    payload = toggle_payload(result, current_app.config.get('LANGUAGE'))
    broadcast_attendance(payload)

    return jsonify(payload), 200


@checkin_bp.route('/api/status/<code>', methods=['GET'])
def status(code):
    """Current state of a student, with elapsed time when checked in."""
    report = get_services().attendance.get_status(code)
    language = current_app.config.get('LANGUAGE')

    if report.state == CHECKED_IN:
        message = render('status_in', language, name=report.student.full_name,
                         minutes=report.elapsed_minutes)
    else:
        message = render('status_out', language, name=report.student.full_name)

    return jsonify({'status': report.to_dict(), 'message': message}), 200
