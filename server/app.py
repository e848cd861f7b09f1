"""
Coworking Check-in Server: main application

Flask + Socket.IO server for student check-in, memberships and payments.
Run with: python app.py
"""
import sys
import os
import logging

# Add server directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask
from flask_cors import CORS
from config import Config
from database import init_db
from errors import register_error_handlers
from services.registry import init_services
from sockets.events import socketio, register_socket_events

logger = logging.getLogger(__name__)

register_socket_events(socketio)


def configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))


def create_app(config_class=Config, overrides=None, gateway_transport=None):
    """
    Build the Flask app.

    overrides: extra config values applied after config_class.
    gateway_transport: httpx transport for the gateway client (tests).
    """
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config.get('LOG_LEVEL', 'INFO'))

    # Kiosk and frontend live on other origins
    CORS(app, resources={r"/api/*": {"origins": "*"}}, supports_credentials=True)

    init_db(app)
    init_services(app, gateway_transport=gateway_transport)
    register_error_handlers(app)

    from routes.checkin import checkin_bp
    from routes.students import students_bp
    from routes.plans import plans_bp
    from routes.payments import payments_bp
    from routes.staff import staff_bp

    app.register_blueprint(checkin_bp)
    app.register_blueprint(students_bp)
    app.register_blueprint(plans_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(staff_bp)

    socketio.init_app(
        app,
        cors_allowed_origins="*",
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE'),
    )

    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Health check endpoint."""
        return {'status': 'ok', 'service': 'cowork-checkin-server'}, 200

    return app


# ─── Run ────────────────────────────────────────────────

if __name__ == '__main__':
    import socket

    app = create_app()

    hostname = socket.gethostname()
    try:
        local_ip = socket.gethostbyname(hostname)
    except socket.gaierror:
        local_ip = '127.0.0.1'

    port = int(os.environ.get('PORT', '5000'))

    print("=" * 60)
    print("  Coworking Check-in Server")
    print("=" * 60)
    print(f"  API:              http://{local_ip}:{port}/api")
    print(f"  Webhook:          http://{local_ip}:{port}/api/webhook/mercadopago")
    print(f"  Health check:     http://{local_ip}:{port}/api/health")
    print("=" * 60)

    socketio.run(app, host='0.0.0.0', port=port, debug=app.config.get('DEBUG', False))
