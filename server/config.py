"""
Configuration for the Coworking Check-in server.
"""
import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name, default='0'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _engine_options(database_uri):
    # SQLite connections are shared across request threads
    if database_uri.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}}
    return {}


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY', 'cowork-checkin-dev-key-change-in-production')
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL', f"sqlite:///{os.path.join(BASE_DIR, 'cowork.db')}"
    )
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    LANGUAGE = os.environ.get('LANGUAGE', 'es')

    # Socket.IO
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'eventlet')

    # Staff panel
    STAFF_PASSWORD = os.environ.get('STAFF_PASSWORD', 'admin123')

    # Access codes: 5 digits, 10000..99999
    CODE_GENERATION_ATTEMPTS = 50

    # Plans and access policy
    PLAN_DURATION_DAYS = int(os.environ.get('PLAN_DURATION_DAYS', '30'))
    ALLOW_OVERLAPPING_PLANS = _env_flag('ALLOW_OVERLAPPING_PLANS')
    REQUIRE_ACTIVE_PLAN = _env_flag('REQUIRE_ACTIVE_PLAN')
    ENFORCE_PLAN_SCHEDULE = _env_flag('ENFORCE_PLAN_SCHEDULE')
    TIMEZONE = os.environ.get('TIMEZONE', 'UTC')

    # Payment gateway (Mercado Pago)
    MP_ACCESS_TOKEN = os.environ.get('MP_ACCESS_TOKEN', '')
    MP_BASE_URL = os.environ.get('MP_BASE_URL', 'https://api.mercadopago.com')
    MP_WEBHOOK_SECRET = os.environ.get('MP_WEBHOOK_SECRET', '')
    MP_SANDBOX = _env_flag('MP_SANDBOX')
    MP_STATEMENT_DESCRIPTOR = os.environ.get('MP_STATEMENT_DESCRIPTOR', 'COWORK')
    GATEWAY_TIMEOUT = float(os.environ.get('GATEWAY_TIMEOUT', '10'))
    CURRENCY = os.environ.get('CURRENCY', 'ARS')
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:5173')
    BACKEND_URL = os.environ.get('BACKEND_URL', 'http://localhost:5000')


class TestingConfig(Config):
    """Configuration used by the test suite."""
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)
    LOG_LEVEL = 'DEBUG'
    LANGUAGE = 'en'
    SOCKETIO_ASYNC_MODE = 'threading'
    STAFF_PASSWORD = 'staff-pass'

    PLAN_DURATION_DAYS = 30
    ALLOW_OVERLAPPING_PLANS = False
    REQUIRE_ACTIVE_PLAN = False
    ENFORCE_PLAN_SCHEDULE = False

    MP_ACCESS_TOKEN = 'TEST-token'
    MP_BASE_URL = 'https://gateway.test'
    MP_WEBHOOK_SECRET = ''
    MP_SANDBOX = False
    GATEWAY_TIMEOUT = 2.0
    FRONTEND_URL = 'http://frontend.test'
    BACKEND_URL = 'http://backend.test'
