"""Service wiring shared by the API routes"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request

from ..auth import OtpAuthenticator, Registrar
from ..database import Database
from ..mailer import CodeNotifier, ContentDispatcher
from ..notifier.alert import AlertNotifier
from ..payment import PaymentVerifier, RazorpayClient
from ..scheduler import DeliveryScheduler
from ..subscription import TrialActivator, EntitlementService


@dataclass
class Services:
    """Per-process service instances bound to one Database"""
    db: Database
    registrar: Registrar
    authenticator: OtpAuthenticator
    activator: TrialActivator
    entitlements: EntitlementService
    scheduler: DeliveryScheduler
    verifier: PaymentVerifier
    gateway: Optional[RazorpayClient] = None
    scheduler_token: Optional[str] = None

    def order_gateway(self) -> RazorpayClient:
        """Configured gateway, or a client built from settings"""
        return self.gateway or RazorpayClient()


def build_services(
    db: Database,
    code_notifier: CodeNotifier,
    content_dispatcher: ContentDispatcher,
    clock: Callable[[], datetime] = datetime.now,
    alert_notifier: AlertNotifier = None,
    gateway: RazorpayClient = None,
    payment_secret: str = None,
    scheduler_token: str = None
) -> Services:
    return Services(
        db=db,
        registrar=Registrar(db, clock=clock),
        authenticator=OtpAuthenticator(db, code_notifier, clock=clock),
        activator=TrialActivator(db, clock=clock),
        entitlements=EntitlementService(db, clock=clock),
        scheduler=DeliveryScheduler(db, content_dispatcher, clock=clock, alert_notifier=alert_notifier),
        verifier=PaymentVerifier(db, key_secret=payment_secret, clock=clock),
        gateway=gateway,
        scheduler_token=scheduler_token,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
