"""
콘텐츠 발송 스케줄러 테스트
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from ultralit.database import (
    DeliveryRepository,
    SchedulerLog,
    SchedulerLogRepository,
    UserContentDelivery,
    UserRepository,
    UserTopicRepository,
)
from ultralit.exceptions import NotFoundError
from ultralit.scheduler import DeliveryScheduler
from ultralit.subscription import TrialActivator


def _rows(db, user_id=None):
    """(topic_id, day_number, is_sent) 목록"""
    with db.session() as session:
        query = session.query(UserContentDelivery)
        if user_id is not None:
            query = query.filter(UserContentDelivery.user_id == user_id)
        rows = query.order_by(UserContentDelivery.topic_id, UserContentDelivery.day_number).all()
        return [(r.topic_id, r.day_number, r.is_sent) for r in rows]


class TestDeliveryScheduler:
    """DeliveryScheduler 테스트"""

    @pytest.fixture
    def scheduler(self, db, dispatcher, clock, alerts):
        return DeliveryScheduler(
            db, dispatcher, clock=clock, dispatch_timeout=5.0, max_attempts=3, alert_notifier=alerts
        )

    @pytest.fixture
    def learner(self, db, make_user, catalog, clock):
        """체험판으로 5번(3일), 7번(1일) 토픽을 선택한 사용자"""
        user_id = make_user(email="learner@example.com")
        TrialActivator(db, clock=clock).activate_trial(user_id, "Free Trial", {"topics": [5, 7]})
        return user_id

    def test_empty_cycle(self, scheduler, db, catalog, dispatcher):
        result = scheduler.run_delivery_cycle()

        assert (result.total, result.sent, result.failed) == (0, 0, 0)
        assert dispatcher.sent == []
        assert _rows(db) == []

    def test_trial_then_cycles(self, scheduler, db, learner, dispatcher, clock):
        result = scheduler.run_delivery_cycle()

        assert (result.total, result.sent, result.failed) == (2, 2, 0)
        assert sorted(dispatcher.sent) == [
            ("learner@example.com", "Topic 5 day 1", 1),
            ("learner@example.com", "Topic 7 day 1", 1),
        ]
        # 다음 일차 행은 이번 주기에 발송되지 않음
        assert _rows(db) == [(5, 1, True), (5, 2, False), (7, 1, True)]

        clock.advance(days=1)
        result = scheduler.run_delivery_cycle()
        assert (result.total, result.sent) == (1, 1)
        assert _rows(db) == [(5, 1, True), (5, 2, True), (5, 3, False), (7, 1, True)]

        clock.advance(days=1)
        scheduler.run_delivery_cycle()
        assert _rows(db) == [(5, 1, True), (5, 2, True), (5, 3, True), (7, 1, True)]

        # 마지막 일차 이후에는 더 이상 발송하지 않음
        clock.advance(days=1)
        result = scheduler.run_delivery_cycle()
        assert result.total == 0
        assert len(dispatcher.sent) == 4

    def test_sent_rows_are_stamped(self, scheduler, db, learner, clock):
        scheduler.run_delivery_cycle()

        with db.session() as session:
            sent = session.query(UserContentDelivery).filter(UserContentDelivery.is_sent == True).all()
            assert all(row.delivered_on == clock() for row in sent)
            assert session.query(SchedulerLog).count() == 2

    def test_failed_dispatch_keeps_row_pending(self, scheduler, db, learner, dispatcher, make_user, clock):
        other = make_user(email="other@example.com", name="Other")
        with db.session() as session:
            DeliveryRepository.create(session, other, 1, 1, clock())
        dispatcher.failing_emails.add("learner@example.com")

        result = scheduler.run_delivery_cycle()

        # 한 사용자의 실패가 다른 발송을 막지 않음
        assert (result.total, result.sent, result.failed) == (3, 1, 2)
        assert {f.reason for f in result.failures} == {"mailbox full"}
        assert _rows(db, learner) == [(5, 1, False), (7, 1, False)]
        assert _rows(db, other) == [(1, 1, True), (1, 2, False)]

        with db.session() as session:
            row = session.query(UserContentDelivery).filter(
                UserContentDelivery.user_id == learner, UserContentDelivery.topic_id == 5
            ).one()
            assert row.attempts == 1
            assert row.last_error == "mailbox full"

        # 다음 주기에 재시도
        dispatcher.failing_emails.clear()
        result = scheduler.run_delivery_cycle()
        assert result.sent == 3
        assert _rows(db, learner) == [(5, 1, True), (5, 2, False), (7, 1, True)]

    def test_dispatcher_exception_is_a_failure(self, scheduler, db, learner, dispatcher):
        dispatcher.raise_for.add("learner@example.com")

        result = scheduler.run_delivery_cycle()

        assert result.failed == 2
        assert "provider exploded" in result.failures[0].reason
        assert _rows(db) == [(5, 1, False), (7, 1, False)]

    def test_dispatch_timeout(self, db, learner, dispatcher, clock):
        scheduler = DeliveryScheduler(db, dispatcher, clock=clock, dispatch_timeout=0.05, max_attempts=0)
        dispatcher.delay_seconds = 0.5

        result = scheduler.run_delivery_cycle()

        assert result.sent == 0
        assert all("timed out" in f.reason for f in result.failures)
        assert _rows(db) == [(5, 1, False), (7, 1, False)]

    def test_dispatcher_may_write_to_database(self, scheduler, db, learner, dispatcher, clock, monkeypatch):
        record_send = dispatcher.send

        # 발송 중에 같은 데이터베이스에 기록하는 발송기
        def touching_send(contact, payload):
            with db.session() as session:
                UserRepository.touch_last_login(session, contact.user_id, clock())
            return record_send(contact, payload)

        monkeypatch.setattr(dispatcher, "send", touching_send)

        result = scheduler.run_delivery_cycle()

        assert (result.sent, result.failed) == (2, 0)
        assert _rows(db) == [(5, 1, True), (5, 2, False), (7, 1, True)]
        with db.session() as session:
            assert UserRepository.get_by_id(session, learner).last_login == clock()

    def test_zero_recent_limit(self, scheduler, db, learner):
        scheduler.run_delivery_cycle()

        stats = scheduler.get_scheduler_stats(limit=0)

        assert stats.sent_today == 2
        assert stats.recent == []

    def test_dead_letter_after_max_attempts(self, scheduler, db, learner, dispatcher, alerts):
        dispatcher.failing_emails.add("learner@example.com")

        scheduler.run_delivery_cycle()
        scheduler.run_delivery_cycle()
        result = scheduler.run_delivery_cycle()

        assert len(result.dead_lettered) == 2
        assert len(alerts.sent) == 2
        assert alerts.sent[0].details["Attempts"] == 3

        # 중단된 행은 이후 주기에서 제외
        result = scheduler.run_delivery_cycle()
        assert result.total == 0
        with db.session() as session:
            assert session.query(UserContentDelivery).filter(
                UserContentDelivery.dead_lettered == True
            ).count() == 2

    def test_audit_failure_is_advisory(self, scheduler, db, learner, monkeypatch):
        def broken_log(*args, **kwargs):
            raise OperationalError("INSERT INTO scheduler_logs", {}, Exception("table locked"))

        monkeypatch.setattr(SchedulerLogRepository, "create", staticmethod(broken_log))

        result = scheduler.run_delivery_cycle()

        assert result.sent == 2
        assert len(result.advisory_warnings) == 2
        assert _rows(db) == [(5, 1, True), (5, 2, False), (7, 1, True)]

    def test_one_pending_row_per_pair(self, db, learner, clock):
        """사용자-토픽 쌍마다 미발송 행은 하나만 허용"""
        with pytest.raises(IntegrityError):
            with db.session() as session:
                DeliveryRepository.create(session, learner, 5, 2, clock())

    def test_scheduler_stats(self, scheduler, db, learner, make_user, clock):
        other = make_user(email="other@example.com", name="Other")
        with db.session() as session:
            DeliveryRepository.create(session, other, 1, 1, clock())

        scheduler.run_delivery_cycle()
        stats = scheduler.get_scheduler_stats()

        assert stats.pending == 2  # 5번 토픽 2일차, 1번 토픽 2일차
        assert stats.sent_today == 3
        assert {r.email for r in stats.recent} == {"learner@example.com", "other@example.com"}

        mine = scheduler.get_scheduler_stats(user_id=other, limit=1)
        assert (mine.pending, mine.sent_today) == (1, 1)
        assert [r.title for r in mine.recent] == ["Topic 1 day 1"]

        clock.advance(days=1)
        assert scheduler.get_scheduler_stats().sent_today == 0

    def test_topic_progress(self, scheduler, db, learner, clock):
        scheduler.run_delivery_cycle()

        progress = scheduler.topic_progress(learner, 5)

        assert (progress.total_days, progress.current_day) == (3, 1)
        assert [c.is_sent for c in progress.contents] == [True, False, False]
        assert progress.next_delivery_day == 2
        assert not progress.completed

        assert scheduler.topic_progress(learner, 7).completed

    def test_topic_progress_requires_topic(self, scheduler, db, learner, make_user, clock):
        with pytest.raises(NotFoundError):
            scheduler.topic_progress(learner, 1)

        with db.session() as session:
            UserTopicRepository.create(session, learner, 1, clock(), None)
        assert scheduler.topic_progress(learner, 1).current_day == 0
