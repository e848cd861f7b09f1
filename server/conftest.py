"""Shared fixtures: an app on a temporary SQLite file and a scripted gateway."""
import json
from datetime import timedelta

import httpx
import pytest

from app import create_app
from config import TestingConfig
from database import db
from models import utcnow


class GatewayStub:
    """
    Stands in for the Mercado Pago API behind httpx.MockTransport.

    Records every request; answers preferences with pref-<n> ids and payment
    lookups from `payments`. Set `fail_with` to an HTTP status or an httpx
    exception to make every call fail.
    """

    def __init__(self):
        self.requests = []
        self.payments = {}
        self.fail_with = None
        self.omit_init_point = False
        self._preferences = 0

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)

    def handler(self, request):
        self.requests.append(request)
        if isinstance(self.fail_with, Exception):
            raise self.fail_with
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={'message': 'gateway error'})

        if request.method == 'POST' and request.url.path == '/checkout/preferences':
            body = json.loads(request.content)
            self._preferences += 1
            pref_id = f'pref-{self._preferences}'
            answer = {
                'id': pref_id,
                'external_reference': body.get('external_reference'),
                'sandbox_init_point': f'https://sandbox.checkout.test/{pref_id}',
            }
            if not self.omit_init_point:
                answer['init_point'] = f'https://checkout.test/{pref_id}'
            return httpx.Response(201, json=answer)

        if request.method == 'GET' and request.url.path.startswith('/v1/payments/'):
            payment_id = request.url.path.rsplit('/', 1)[-1]
            if payment_id in self.payments:
                return httpx.Response(200, json=self.payments[payment_id])
            return httpx.Response(404, json={'message': 'payment not found'})

        return httpx.Response(404, json={'message': 'no such endpoint'})

    def preference_bodies(self):
        return [json.loads(r.content) for r in self.requests
                if r.method == 'POST' and r.url.path == '/checkout/preferences']


class FakeClock:
    """Controllable replacement for utcnow()."""

    def __init__(self, start=None):
        self.now = start or utcnow().replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def gateway():
    return GatewayStub()


@pytest.fixture
def app_factory(tmp_path, gateway):
    created = []

    def make(**overrides):
        uri = f"sqlite:///{tmp_path / f'cowork-{len(created)}.db'}"
        config = {
            'SQLALCHEMY_DATABASE_URI': uri,
            'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False}},
        }
        config.update(overrides)
        app = create_app(TestingConfig, overrides=config, gateway_transport=gateway.transport)
        created.append(app)
        return app

    yield make

    for app in created:
        with app.app_context():
            db.session.remove()
            db.engine.dispose()


@pytest.fixture
def app(app_factory):
    app = app_factory()
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def staff_client(app):
    client = app.test_client()
    response = client.post('/api/staff/login', json={'name': 'Lucía', 'password': 'staff-pass'})
    assert response.status_code == 200
    return client


@pytest.fixture
def services(app):
    return app.extensions['cowork']


@pytest.fixture
def clock(services):
    fake = FakeClock()
    services.attendance.clock = fake
    services.directory.clock = fake
    services.tracker.clock = fake
    return fake


@pytest.fixture
def profile_factory():
    def make(n=0, **fields):
        profile = {
            'full_name': f'Student {n}',
            'email': f'student{n}@example.com',
            'phone': '+54 261 555 0000',
            'institution': 'UNCUYO',
            'career': 'Ingeniería',
            'classification': 'student',
        }
        profile.update(fields)
        return profile
    return make


@pytest.fixture
def student(services, profile_factory):
    return services.directory.register(profile_factory(0, full_name='Ana Pérez', email='ana@example.com'))


@pytest.fixture
def plan(services):
    return services.catalog.create_plan({
        'name': 'Full Time',
        'price': 18000,
        'description': 'Weekdays all day',
        'classification': 'student',
        'duration_days': 30,
    })
