"""
Builds the service objects once per app and exposes them to routes.
"""
import logging
from dataclasses import dataclass

from flask import current_app

from services.attendance import AccessPolicy, AttendanceStateMachine
from services.directory import StudentDirectory
from services.gateway import GatewayConfig, MercadoPagoClient, PaymentGatewayAdapter
from services.ledger import SessionLedger
from services.locks import KeyedLocks
from services.payments import PlanPaymentTracker
from services.plans import PlanCatalog

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'cowork'


@dataclass
class Services:
    locks: KeyedLocks
    directory: StudentDirectory
    ledger: SessionLedger
    attendance: AttendanceStateMachine
    catalog: PlanCatalog
    tracker: PlanPaymentTracker
    gateway: PaymentGatewayAdapter
    gateway_config: GatewayConfig


def init_services(app, gateway_transport=None):
    config = app.config
    locks = KeyedLocks()

    directory = StudentDirectory(
        locks,
        max_attempts=config.get('CODE_GENERATION_ATTEMPTS', 50),
        allow_overlapping_plans=config.get('ALLOW_OVERLAPPING_PLANS', False),
    )
    ledger = SessionLedger()
    policy = AccessPolicy(
        require_active_plan=config.get('REQUIRE_ACTIVE_PLAN', False),
        enforce_schedule=config.get('ENFORCE_PLAN_SCHEDULE', False),
        timezone_name=config.get('TIMEZONE', 'UTC'),
    )
    attendance = AttendanceStateMachine(directory, ledger, locks, policy)
    catalog = PlanCatalog(default_duration_days=config.get('PLAN_DURATION_DAYS', 30))
    tracker = PlanPaymentTracker(directory, catalog, locks, language=config.get('LANGUAGE'))

    gateway_config = GatewayConfig.from_mapping(config)
    if not gateway_config.configured:
        logger.warning("[PAY] MP_ACCESS_TOKEN is not set; online payments will fail")
    if not gateway_config.webhook_secret:
        logger.warning("[WEBHOOK] MP_WEBHOOK_SECRET is not set; only notification-form callbacks are accepted")
    client = MercadoPagoClient(gateway_config, transport=gateway_transport)
    gateway = PaymentGatewayAdapter(tracker, client, gateway_config)

    services = Services(
        locks=locks,
        directory=directory,
        ledger=ledger,
        attendance=attendance,
        catalog=catalog,
        tracker=tracker,
        gateway=gateway,
        gateway_config=gateway_config,
    )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services():
    return current_app.extensions[EXTENSION_KEY]
