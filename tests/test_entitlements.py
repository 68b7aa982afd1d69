"""
이용권 관리 테스트
"""

from datetime import timedelta

import pytest

from ultralit.database import (
    DeliveryRepository,
    HistoryAction,
    Payment,
    PaymentRepository,
    SubscriptionHistory,
    SubscriptionRepository,
    UserContentDelivery,
    UserPreference,
    UserTopic,
)
from ultralit.exceptions import (
    ErrorCode,
    ConflictError,
    EntitlementIntegrityError,
    NotFoundError,
    ValidationError,
)
from ultralit.subscription import EntitlementService


class TestEntitlementService:
    """EntitlementService 테스트"""

    @pytest.fixture
    def service(self, db, clock):
        return EntitlementService(db, clock=clock)

    @pytest.fixture
    def user_id(self, make_user, catalog):
        return make_user()

    # ---- purchase_topic ----

    def test_purchase_topic_default_window(self, service, db, user_id, clock):
        purchase = service.purchase_topic(user_id, 2, plan_name="Students", amount=200)

        assert purchase.expires_at == clock() + timedelta(days=30)
        assert purchase.delivery_seeded == True

        with db.session() as session:
            payment = session.query(Payment).one()
            assert payment.payment_type == "topic_purchase"
            assert payment.topic_id == 2
            delivery = session.query(UserContentDelivery).one()
            assert (delivery.topic_id, delivery.day_number, delivery.is_sent) == (2, 1, False)

    def test_purchase_topic_lifetime(self, service, user_id):
        purchase = service.purchase_topic(user_id, 2, duration_days=9999)

        assert purchase.expires_at is None
        assert service.list_user_topics(user_id)[0].is_lifetime

    def test_purchase_is_unique_per_pair(self, service, db, user_id):
        service.purchase_topic(user_id, 2)

        with pytest.raises(ConflictError) as exc_info:
            service.purchase_topic(user_id, 2)
        assert exc_info.value.code == ErrorCode.ALREADY_PURCHASED

        with db.session() as session:
            assert session.query(UserTopic).count() == 1
            assert session.query(Payment).count() == 1

    def test_purchase_unknown_topic(self, service, db, user_id):
        with pytest.raises(EntitlementIntegrityError) as exc_info:
            service.purchase_topic(user_id, 404)
        assert exc_info.value.invalid_ids == [404]

        with db.session() as session:
            assert session.query(UserTopic).count() == 0

    def test_purchase_keeps_existing_pending_delivery(self, service, db, user_id, clock):
        with db.session() as session:
            DeliveryRepository.create(session, user_id, 3, 1, clock())

        purchase = service.purchase_topic(user_id, 3)

        assert purchase.delivery_seeded == False
        with db.session() as session:
            assert session.query(UserContentDelivery).count() == 1

    def test_list_user_topics_derives_status(self, service, user_id, clock):
        service.purchase_topic(user_id, 1, duration_days=1)
        service.purchase_topic(user_id, 2, duration_days=60)

        clock.advance(days=2)
        status = {t.topic_id: t.status for t in service.list_user_topics(user_id)}

        assert status == {1: "expired", 2: "active"}

    # ---- replace_user_topics ----

    def test_replace_user_topics(self, service, db, user_id):
        service.purchase_topic(user_id, 1)

        saved = service.replace_user_topics(user_id, [3, "4", 3])

        assert saved == [3, 4]
        with db.session() as session:
            topic_ids = sorted(t.topic_id for t in session.query(UserTopic).all())
            assert topic_ids == [3, 4]

    def test_replace_rejects_malformed_ids(self, service, db, user_id):
        service.purchase_topic(user_id, 1)

        with pytest.raises(ValidationError) as exc_info:
            service.replace_user_topics(user_id, [2, -1, "x", 0])
        assert exc_info.value.details["invalid_ids"] == [-1, "x", 0]

        with db.session() as session:
            assert [t.topic_id for t in session.query(UserTopic).all()] == [1]

    def test_replace_rejects_unknown_ids(self, service, db, user_id):
        service.purchase_topic(user_id, 1)

        with pytest.raises(EntitlementIntegrityError) as exc_info:
            service.replace_user_topics(user_id, [2, 50, 60])
        assert exc_info.value.invalid_ids == [50, 60]

        with db.session() as session:
            assert [t.topic_id for t in session.query(UserTopic).all()] == [1]

    def test_replace_requires_list(self, service, user_id):
        with pytest.raises(ValidationError):
            service.replace_user_topics(user_id, "1,2")

    # ---- preferences ----

    def test_save_preferences_upsert(self, service, db, user_id, clock):
        service.save_preferences(user_id, "Student", "Education", "en")
        clock.advance(hours=1)
        saved = service.save_preferences(user_id, "Manager", "Finance", "hi", frequency="daily")

        assert saved.role == "Manager"
        assert saved.updated_at == clock()
        with db.session() as session:
            assert session.query(UserPreference).count() == 1

    def test_save_preferences_missing_fields(self, service, user_id):
        with pytest.raises(ValidationError) as exc_info:
            service.save_preferences(user_id, "Student", "", None)
        assert exc_info.value.details["missing"] == ["industry", "language"]

    def test_save_preferences_unknown_user(self, service, catalog):
        with pytest.raises(NotFoundError):
            service.save_preferences(42, "Student", "Education", "en")

    # ---- history & plans ----

    def test_payment_history(self, service, db, user_id, clock):
        with db.session() as session:
            PaymentRepository.create(
                session, user_id=user_id, amount=500.0, currency="INR",
                status="success", payment_method="razorpay", now=clock(),
            )
        clock.advance(minutes=5)
        service.purchase_topic(user_id, 2, amount=99)

        history = service.payment_history(user_id)

        assert [p.topic_name for p in history] == ["Topic 2", "General Subscription"]

    def test_list_plans(self, service):
        plans = service.list_plans()

        assert [p.name for p in plans] == ["Free Trial", "Students", "Professionals & Executives"]
        assert plans[0].is_trial
        assert plans[1].features

    # ---- check_subscription ----

    def test_check_subscription_none(self, service, user_id):
        state = service.check_subscription(user_id)

        assert state.has_subscription == False
        assert state.is_active == False

    def test_check_subscription_lazy_expiry(self, service, db, user_id, clock):
        service.purchase_topic(user_id, 5)
        with db.session() as session:
            SubscriptionRepository.create(
                session, user_id=user_id, plan_name="Free Trial", start_date=clock(),
                next_renewal_date=clock() + timedelta(days=7), amount=0.0,
                currency="INR", auto_renewal=False,
            )

        state = service.check_subscription(user_id)
        assert state.is_active == True
        assert state.topics == ["Topic 5"]

        clock.advance(days=8)
        state = service.check_subscription(user_id)

        assert state.is_active == False
        assert state.status == "expired"
        with db.session() as session:
            history = session.query(SubscriptionHistory).one()
            assert history.action == HistoryAction.EXPIRED

    def test_check_subscription_auto_renewal_not_expired(self, service, db, user_id, clock):
        with db.session() as session:
            SubscriptionRepository.create(
                session, user_id=user_id, plan_name="Students", start_date=clock(),
                next_renewal_date=clock() + timedelta(days=30), amount=200.0,
                currency="INR", auto_renewal=True,
            )

        clock.advance(days=31)
        state = service.check_subscription(user_id)

        assert state.is_active == True
