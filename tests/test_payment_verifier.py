"""
결제 검증 및 주문 생성 테스트
"""

import base64
import json
from datetime import timedelta

import httpx
import pytest

from ultralit.database import (
    HistoryAction,
    Payment,
    Subscription,
    SubscriptionHistory,
    SubscriptionRepository,
    SubscriptionStatus,
    UserContentDelivery,
)
from ultralit.exceptions import (
    ConfigurationError,
    GatewayError,
    InvalidSignatureError,
    NotFoundError,
    ValidationError,
)
from ultralit.payment import PaymentVerifier, RazorpayClient, compute_signature

SECRET = "test_secret"


def _table_counts(db):
    with db.session() as session:
        return (
            session.query(Payment).count(),
            session.query(Subscription).count(),
            session.query(SubscriptionHistory).count(),
        )


class TestPaymentVerifier:
    """PaymentVerifier 테스트"""

    @pytest.fixture
    def verifier(self, db, clock):
        return PaymentVerifier(db, key_secret=SECRET, clock=clock)

    @pytest.fixture
    def user_id(self, make_user):
        return make_user()

    def _verify(self, verifier, user_id, payment_id="pay_1", **kwargs):
        order_id = kwargs.pop("order_id", "order_1")
        signature = kwargs.pop("signature", compute_signature(order_id, payment_id, SECRET))
        return verifier.verify_and_activate(
            order_id=order_id,
            payment_id=payment_id,
            signature=signature,
            user_id=user_id,
            amount=kwargs.pop("amount", 500),
            **kwargs,
        )

    def test_compute_signature(self):
        # echo -n "order_1|pay_1" | openssl dgst -sha256 -hmac test_secret
        signature = compute_signature("order_1", "pay_1", SECRET)
        assert len(signature) == 64
        assert signature == compute_signature("order_1", "pay_1", SECRET)
        assert signature != compute_signature("order_1", "pay_2", SECRET)

    def test_new_subscription(self, verifier, db, user_id, clock):
        result = self._verify(verifier, user_id, plan_name="Students")

        assert result.already_processed == False
        assert result.next_renewal_date == clock() + timedelta(days=30)
        with db.session() as session:
            payment = session.query(Payment).one()
            assert payment.status == "success"
            assert payment.provider_order_id == "order_1"
            assert payment.subscription_id == result.subscription_id

            subscription = session.query(Subscription).one()
            assert subscription.plan_name == "Students"
            assert subscription.auto_renewal == True
            assert session.query(SubscriptionHistory).one().action == HistoryAction.NEW_SUBSCRIPTION

            # 발송 행은 생성하지 않음
            assert session.query(UserContentDelivery).count() == 0

    def test_new_subscription_replaces_active(self, verifier, db, user_id, clock):
        with db.session() as session:
            trial = SubscriptionRepository.create(
                session, user_id=user_id, plan_name="Free Trial", start_date=clock(),
                next_renewal_date=clock() + timedelta(days=7), amount=0.0,
                currency="INR", auto_renewal=False,
            )
            trial_id = trial.id

        result = self._verify(verifier, user_id, plan_name="Professionals & Executives")

        with db.session() as session:
            old = session.query(Subscription).filter(Subscription.id == trial_id).one()
            assert old.status == SubscriptionStatus.REPLACED
            assert old.is_active == False
            active = SubscriptionRepository.get_active(session, user_id)
            assert active.id == result.subscription_id

    def test_upgrade_existing_subscription(self, verifier, db, user_id, clock):
        with db.session() as session:
            trial = SubscriptionRepository.create(
                session, user_id=user_id, plan_name="Free Trial", start_date=clock(),
                next_renewal_date=clock() + timedelta(days=7), amount=0.0,
                currency="INR", auto_renewal=False,
            )
            trial_id = trial.id

        clock.advance(days=3)
        result = self._verify(verifier, user_id, subscription_id=trial_id, plan_name="Students")

        assert result.subscription_id == trial_id
        with db.session() as session:
            subscription = session.query(Subscription).one()
            assert subscription.status == SubscriptionStatus.ACTIVE
            assert subscription.plan_name == "Students"
            assert subscription.next_renewal_date == clock() + timedelta(days=30)
            history = session.query(SubscriptionHistory).one()
            assert history.action == HistoryAction.UPGRADE
            assert history.previous_plan == "Free Trial"

    def test_unknown_plan_uses_default_window(self, verifier, user_id, clock):
        result = self._verify(verifier, user_id, plan_name="Custom")
        assert result.next_renewal_date == clock() + timedelta(days=30)

    def test_tampered_signature_writes_nothing(self, verifier, db, user_id):
        signature = compute_signature("order_1", "pay_1", SECRET)
        tampered = ("0" if signature[0] != "0" else "1") + signature[1:]

        with pytest.raises(InvalidSignatureError):
            self._verify(verifier, user_id, signature=tampered)

        assert _table_counts(db) == (0, 0, 0)

    def test_signature_bound_to_payment_id(self, verifier, db, user_id):
        with pytest.raises(InvalidSignatureError):
            self._verify(verifier, user_id, payment_id="pay_2",
                         signature=compute_signature("order_1", "pay_1", SECRET))
        assert _table_counts(db) == (0, 0, 0)

    def test_idempotent_replay(self, verifier, db, user_id):
        first = self._verify(verifier, user_id)
        second = self._verify(verifier, user_id)

        assert second.already_processed == True
        assert second.payment_id == first.payment_id
        assert _table_counts(db) == (1, 1, 1)

    def test_missing_secret(self, db, user_id, clock):
        verifier = PaymentVerifier(db, key_secret="", clock=clock)

        with pytest.raises(ConfigurationError):
            verifier.verify_and_activate("order_1", "pay_1", "sig", user_id, 100)

    @pytest.mark.parametrize("field", ["order_id", "signature"])
    def test_missing_fields(self, verifier, user_id, field):
        with pytest.raises(ValidationError) as exc_info:
            self._verify(verifier, user_id, **{field: ""})
        assert exc_info.value.details["missing"] == [field]

    def test_non_numeric_amount(self, verifier, db, user_id):
        with pytest.raises(ValidationError):
            self._verify(verifier, user_id, amount="five hundred")
        assert _table_counts(db) == (0, 0, 0)

    def test_unknown_user(self, verifier, db):
        with pytest.raises(NotFoundError):
            self._verify(verifier, 12345)
        assert _table_counts(db) == (0, 0, 0)

    def test_foreign_subscription_rolls_back(self, verifier, db, user_id, make_user, clock):
        other = make_user(email="other@example.com")
        with db.session() as session:
            foreign = SubscriptionRepository.create(
                session, user_id=other, plan_name="Students", start_date=clock(),
                next_renewal_date=clock() + timedelta(days=30), amount=200.0,
                currency="INR", auto_renewal=True,
            )
            foreign_id = foreign.id

        with pytest.raises(NotFoundError):
            self._verify(verifier, user_id, subscription_id=foreign_id)

        with db.session() as session:
            assert session.query(Payment).count() == 0


class TestRazorpayClient:
    """RazorpayClient 테스트"""

    @pytest.fixture
    def requests(self):
        return []

    def _client(self, requests, status_code=200, payload=None, clock=None):
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            body = json.loads(request.content)
            data = payload if payload is not None else {
                "id": "order_abc",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            }
            return httpx.Response(status_code, json=data)

        kwargs = {"clock": clock} if clock else {}
        return RazorpayClient(
            key_id="rzp_test",
            key_secret="secret",
            base_url="https://api.example.test/v1",
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    def test_create_order(self, requests, clock):
        with self._client(requests, clock=clock) as client:
            order = client.create_order(499.5, currency="INR")

        assert order.order_id == "order_abc"
        assert order.amount == 49950
        assert order.receipt == f"rcpt_{int(clock().timestamp() * 1000)}"

        request = requests[0]
        assert request.url == "https://api.example.test/v1/orders"
        expected_auth = base64.b64encode(b"rzp_test:secret").decode()
        assert request.headers["authorization"] == f"Basic {expected_auth}"

    @pytest.mark.parametrize("amount", [0, -10, "abc"])
    def test_invalid_amount(self, requests, amount):
        with self._client(requests) as client:
            with pytest.raises(ValidationError):
                client.create_order(amount)
        assert requests == []

    def test_gateway_error(self, requests):
        with self._client(requests, status_code=500, payload={"error": "boom"}) as client:
            with pytest.raises(GatewayError):
                client.create_order(100)

    def test_missing_credentials(self, monkeypatch):
        from ultralit.config import settings

        monkeypatch.setattr(settings, "razorpay_key_id", "")
        monkeypatch.setattr(settings, "razorpay_key_secret", "")
        with pytest.raises(ConfigurationError):
            RazorpayClient()
