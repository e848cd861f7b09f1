"""
Security utilities: webhook signature checks and staff authentication.
"""
import hashlib
import hmac
from functools import wraps

from flask import current_app, jsonify, session

from messages import render


def generate_hmac(payload_str, secret):
    """Generate HMAC-SHA256 signature for a payload string."""
    return hmac.new(
        secret.encode('utf-8'),
        payload_str.encode('utf-8'),
        hashlib.sha256
    ).hexdigest()


def verify_hmac(payload_str, signature, secret):
    """Verify an HMAC-SHA256 signature."""
    expected = generate_hmac(payload_str, secret)
    return hmac.compare_digest(expected, signature)


def parse_signature_header(header):
    """
    Split Mercado Pago's x-signature header into its parts.

    "ts=1704908010,v1=618c8534..." -> {'ts': '1704908010', 'v1': '618c8534...'}
    """
    parts = {}
    for item in (header or '').split(','):
        key, sep, value = item.partition('=')
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def signature_manifest(data_id, request_id, ts):
    """The string Mercado Pago signs. Alphanumeric ids are lower-cased."""
    manifest = ''
    if data_id:
        data_id = str(data_id)
        manifest += f"id:{data_id.lower() if data_id.isalnum() else data_id};"
    if request_id:
        manifest += f"request-id:{request_id};"
    manifest += f"ts:{ts};"
    return manifest


def verify_webhook_signature(secret, signature_header, request_id, data_id):
    """Check an x-signature header against the shared webhook secret."""
    parts = parse_signature_header(signature_header)
    ts = parts.get('ts')
    v1 = parts.get('v1')
    if not ts or not v1:
        return False
    return verify_hmac(signature_manifest(data_id, request_id, ts), v1, secret)


def check_staff_password(password):
    expected = current_app.config.get('STAFF_PASSWORD') or ''
    if not expected or not password:
        return False
    return hmac.compare_digest(password.encode('utf-8'), expected.encode('utf-8'))


def staff_required(f):
    """Reject the request unless a staff member logged in on this session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('is_staff'):
            message = render('staff_only', current_app.config.get('LANGUAGE'))
            return jsonify({'error': message, 'code': 'staff_only'}), 401
        return f(*args, **kwargs)
    return decorated_function
