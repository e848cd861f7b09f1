"""
WebSocket event handlers for the check-in kiosk and the staff dashboard.
"""
import logging

from flask import current_app, request
from flask_socketio import SocketIO, emit, join_room, leave_room

from errors import CoworkError
from messages import render

logger = logging.getLogger(__name__)

socketio = SocketIO()

DASHBOARD_ROOM = 'staff_dashboard'


def broadcast_attendance(payload):
    """Push a check-in/check-out to every connected dashboard."""
    socketio.emit('attendance_update', payload, to=DASHBOARD_ROOM)


def register_socket_events(socketio):
    """Register all WebSocket event handlers with the SocketIO instance."""

    @socketio.on('connect')
    def handle_connect():
        """Handle client connection."""
        client_id = request.sid
        logger.info("[WS] Client connected: %s", client_id)
        emit('connected', {'message': 'Connected to check-in server', 'sid': client_id})

    @socketio.on('disconnect')
    def handle_disconnect(*args):
        logger.info("[WS] Client disconnected: %s", request.sid)

    @socketio.on('join_dashboard')
    def handle_join_dashboard(data=None):
        """Staff dashboard joins the room that receives attendance updates."""
        join_room(DASHBOARD_ROOM)
        emit('joined_dashboard', {'message': 'Connected to staff dashboard'})
        logger.info("[WS] Dashboard connected: %s", request.sid)

    @socketio.on('leave_dashboard')
    def handle_leave_dashboard(data=None):
        leave_room(DASHBOARD_ROOM)

    @socketio.on('check')
    def handle_check(data):
        """
        Real-time check-in/check-out from the kiosk.
        Data: { "code": "12345" }
        """
        from routes.checkin import toggle_payload
        from services.registry import get_services

        language = current_app.config.get('LANGUAGE')
        code = str((data or {}).get('code', '')).strip()

        try:
            result = get_services().attendance.toggle(code)
        except CoworkError as exc:
            emit('check_response', {
                'success': False,
                'code': exc.key,
                'error': render(exc.key, language, **exc.params)
            })
            return

        payload = toggle_payload(result, language)
        emit('check_response', dict(payload, success=True))
        broadcast_attendance(payload)
        logger.info("[WS] Check: %s -> %s", code, result.state)

    return socketio
