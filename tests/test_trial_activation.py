"""
무료 체험판 활성화 테스트
"""

from datetime import timedelta

import pytest

from ultralit.database import (
    DeliveryRepository,
    HistoryAction,
    Payment,
    Subscription,
    SubscriptionHistory,
    SubscriptionStatus,
    UserContentDelivery,
    UserPreference,
)
from ultralit.exceptions import ErrorCode, ConflictError, NotFoundError, ValidationError
from ultralit.subscription import TrialActivator


def _counts(db):
    with db.session() as session:
        return (
            session.query(Payment).count(),
            session.query(Subscription).count(),
            session.query(UserContentDelivery).count(),
        )


class TestTrialActivator:
    """TrialActivator 테스트"""

    @pytest.fixture
    def activator(self, db, clock):
        return TrialActivator(db, clock=clock)

    @pytest.fixture
    def user_id(self, make_user, catalog):
        return make_user()

    def test_activate_trial(self, activator, db, user_id, clock):
        result = activator.activate_trial(
            user_id,
            "Free Trial",
            {"role": "Engineer", "industry": "IT", "language": "en", "topics": [5, "7", 5, "abc", None]},
        )

        assert result.trial_end_date == clock() + timedelta(days=7)
        assert result.seeded_topic_ids == [5, 7]
        assert result.skipped_topics == ["abc", None]

        with db.session() as session:
            payment = session.query(Payment).one()
            assert payment.amount == 0.0
            assert payment.status == "completed"
            assert payment.payment_method == "free_trial"
            assert payment.provider_payment_id == f"trial_{int(clock().timestamp() * 1000)}_{user_id}"
            assert payment.subscription_id == result.subscription_id

            subscription = session.query(Subscription).one()
            assert subscription.status == SubscriptionStatus.ACTIVE
            assert subscription.is_active == True
            assert subscription.auto_renewal == False
            assert subscription.next_renewal_date == subscription.trial_end_date == result.trial_end_date

            history = session.query(SubscriptionHistory).one()
            assert history.action == HistoryAction.NEW_SUBSCRIPTION
            assert history.reason == "Free trial activation"

            deliveries = session.query(UserContentDelivery).order_by(UserContentDelivery.topic_id).all()
            assert [(d.topic_id, d.day_number, d.is_sent) for d in deliveries] == [(5, 1, False), (7, 1, False)]

            preference = session.query(UserPreference).one()
            assert preference.role == "Engineer"

    def test_no_double_trial_while_active(self, activator, db, user_id):
        activator.activate_trial(user_id, "Free Trial", {"topics": [1]})

        with pytest.raises(ConflictError) as exc_info:
            activator.activate_trial(user_id, "Free Trial", {"topics": [2]})
        assert exc_info.value.code == ErrorCode.ACTIVE_SUBSCRIPTION_EXISTS
        assert _counts(db) == (1, 1, 1)

    def test_no_double_trial_after_expiry(self, activator, db, user_id, clock):
        activator.activate_trial(user_id, "Free Trial")
        with db.session() as session:
            subscription = session.query(Subscription).one()
            subscription.status = SubscriptionStatus.EXPIRED
            subscription.is_active = False

        with pytest.raises(ConflictError) as exc_info:
            activator.activate_trial(user_id, "Free Trial")
        assert exc_info.value.code == ErrorCode.DUPLICATE_TRIAL
        assert _counts(db) == (1, 1, 0)

    def test_invalid_plan(self, activator, db, user_id):
        with pytest.raises(ConflictError) as exc_info:
            activator.activate_trial(user_id, "Students", {"topics": [1]})
        assert exc_info.value.code == ErrorCode.INVALID_PLAN
        assert _counts(db) == (0, 0, 0)

    def test_missing_user(self, activator, db, catalog):
        with pytest.raises(ValidationError):
            activator.activate_trial(None, "Free Trial")
        with pytest.raises(NotFoundError):
            activator.activate_trial(999, "Free Trial")
        assert _counts(db) == (0, 0, 0)

    def test_unknown_topic_is_skipped(self, activator, db, user_id):
        result = activator.activate_trial(user_id, "Free Trial", {"topics": [3, 99]})

        assert result.seeded_topic_ids == [3]
        assert result.skipped_topics == [99]

    def test_topic_objects_seed_deliveries(self, activator, db, user_id):
        result = activator.activate_trial(
            user_id, "Free Trial", {"topics": [{"id": 5}, {"topic_id": 7}]}
        )

        assert result.seeded_topic_ids == [5, 7]
        assert result.skipped_topics == []
        with db.session() as session:
            assert session.query(UserContentDelivery).count() == 2

    def test_zero_trial_days_is_honored(self, db, user_id, clock):
        activator = TrialActivator(db, clock=clock, trial_days=0)

        result = activator.activate_trial(user_id, "Free Trial")

        assert result.trial_end_date == clock()

    def test_failure_rolls_back_everything(self, activator, db, user_id, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(DeliveryRepository, "create", staticmethod(boom))

        with pytest.raises(RuntimeError):
            activator.activate_trial(user_id, "Free Trial", {"topics": [1, 2]})

        assert _counts(db) == (0, 0, 0)
        with db.session() as session:
            assert session.query(SubscriptionHistory).count() == 0

    def test_without_preferences(self, activator, db, user_id):
        result = activator.activate_trial(user_id, "Free Trial")

        assert result.seeded_topic_ids == []
        with db.session() as session:
            assert session.query(UserPreference).count() == 0
