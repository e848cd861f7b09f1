"""
Student routes: registration, code recovery, profile and history.
"""
from flask import Blueprint, current_app, jsonify, request

from errors import ValidationError
from messages import render
from services.registry import get_services
from utils.qr import access_code_qr

students_bp = Blueprint('students', __name__)


@students_bp.route('/api/register', methods=['POST'])
def register():
    """
    Register a student and hand out their access code.

    Expects JSON:
    {
        "full_name": "Ana Pérez",
        "email": "ana@example.com",
        "phone": "+54 261 555 1234",    (optional)
        "institution": "UNCUYO",         (optional)
        "career": "Ingeniería",          (optional)
        "classification": "student"      (student / professional)
    }
    """
    data = request.get_json(silent=True)

    if not data:
        raise ValidationError('No data provided')

    student = get_services().directory.register(data)

    return jsonify({
        'message': render('registration_successful', current_app.config.get('LANGUAGE'),
                          code=student.access_code),
        'access_code': student.access_code,
        'student': student.to_dict()
    }), 201


@students_bp.route('/api/recover-code', methods=['POST'])
def recover_code():
    """
    Look up the access code registered for an email.

    Expects JSON:
    {
        "email": "ana@example.com"
    }
    """
    data = request.get_json(silent=True)

    if not data:
        raise ValidationError('No data provided')

    code = get_services().directory.recover_code(data.get('email'))
    return jsonify({'access_code': code}), 200


@students_bp.route('/api/students/<code>', methods=['GET'])
def get_student(code):
    student = get_services().directory.find_by_code(code)
    return jsonify({'student': student.to_dict()}), 200


@students_bp.route('/api/students/<code>/sessions', methods=['GET'])
def student_sessions(code):
    """Session history of a student, newest first."""
    services = get_services()
    student = services.directory.find_by_code(code)
    limit = request.args.get('limit', 50, type=int)

    sessions = services.ledger.history(student.access_code, limit=limit)
    return jsonify({
        'student': student.to_dict(),
        'sessions': [s.to_dict() for s in sessions],
        'total_minutes': student.minutes_used,
    }), 200


@students_bp.route('/api/students/<code>/notifications', methods=['GET'])
def student_notifications(code):
    services = get_services()
    student = services.directory.find_by_code(code)
    notifications = services.tracker.notifications_for(student.access_code)
    return jsonify({'notifications': [n.to_dict() for n in notifications]}), 200


@students_bp.route('/api/students/<code>/qr', methods=['GET'])
def student_qr(code):
    """QR code carrying the access code, for the check-in kiosk scanner."""
    student = get_services().directory.find_by_code(code)
    checkin_url = f"{current_app.config.get('FRONTEND_URL', '').rstrip('/')}/checkin"

    data, image = access_code_qr(student.access_code, checkin_url=checkin_url)
    return jsonify({
        'access_code': student.access_code,
        'data': data,
        'qr_code': image
    }), 200


@students_bp.route('/api/students/<code>/certificate', methods=['POST'])
def submit_certificate(code):
    """Record that the student handed in their enrollment certificate."""
    student = get_services().directory.mark_certificate_submitted(code)
    return jsonify({'student': student.to_dict()}), 200
