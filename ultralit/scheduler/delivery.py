"""
콘텐츠 발송 스케줄러 - 발송 대기 행을 처리하고 다음 일차를 예약
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..database import (
    Database,
    PendingDelivery,
    TopicRepository,
    ContentRepository,
    UserTopicRepository,
    DeliveryRepository,
    SchedulerLogRepository,
)
from ..exceptions import NotFoundError, ValidationError
from ..mailer import Contact, ContentPayload, ContentDispatcher, SendResult
from ..notifier.alert import AlertNotifier, build_dead_letter_alert

logger = logging.getLogger(__name__)


@dataclass
class DeliveryFailure:
    """발송 실패 항목"""
    delivery_id: int
    user_id: int
    email: str
    content_id: int
    title: str
    day_number: int
    reason: str
    attempts: int = 0


@dataclass
class DeliveryCycleResult:
    """발송 주기 결과"""
    total: int = 0
    sent: int = 0
    failures: list[DeliveryFailure] = field(default_factory=list)
    advisory_warnings: list[str] = field(default_factory=list)
    dead_lettered: list[DeliveryFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass
class RecentDelivery:
    """최근 발송 내역"""
    user_id: int
    email: str
    title: str
    delivered_on: Optional[datetime]
    day_number: int


@dataclass
class SchedulerStats:
    """스케줄러 통계"""
    pending: int
    sent_today: int
    recent: list[RecentDelivery] = field(default_factory=list)


@dataclass
class ContentProgress:
    """토픽 콘텐츠별 발송 상태"""
    day_number: int
    title: str
    description: Optional[str]
    is_sent: bool
    delivered_on: Optional[datetime]


@dataclass
class TopicProgress:
    """사용자의 토픽 학습 진도"""
    topic_id: int
    topic_name: str
    total_days: int
    current_day: int
    contents: list[ContentProgress] = field(default_factory=list)
    next_delivery_day: Optional[int] = None
    next_delivery_created_at: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        return self.total_days > 0 and self.current_day >= self.total_days


class DeliveryScheduler:
    """
    일일 콘텐츠 발송 엔진

    사용자-토픽 쌍마다 미발송 행은 하나뿐이며, 발송 성공 시에만 일차가 1 증가한다.
    각 행은 독립된 트랜잭션으로 처리되므로 한 건의 실패가 다른 발송에 영향을 주지 않는다.
    """

    def __init__(
        self,
        db: Database,
        dispatcher: ContentDispatcher,
        clock: Callable[[], datetime] = datetime.now,
        dispatch_timeout: float = None,
        max_attempts: int = None,
        alert_notifier: AlertNotifier = None
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.clock = clock
        self.dispatch_timeout = settings.dispatch_timeout_seconds if dispatch_timeout is None else dispatch_timeout
        self.max_attempts = settings.delivery_max_attempts if max_attempts is None else max_attempts
        self.alert_notifier = alert_notifier

    def run_delivery_cycle(self) -> DeliveryCycleResult:
        """
        발송 주기 1회 실행

        오래된 대기 행부터 처리한다. 이번 주기에 새로 생성된 다음 일차 행은
        다음 주기에서 발송된다.

        Returns:
            DeliveryCycleResult
        """
        with self.db.session() as session:
            pending = DeliveryRepository.get_pending(session)

        result = DeliveryCycleResult(total=len(pending))
        if not pending:
            logger.info("발송 대기 콘텐츠 없음")
            return result

        logger.info(f"발송 주기 시작: {len(pending)}건 대기")

        for item in pending:
            self._process(item, result)

        logger.info(
            f"발송 주기 완료: 성공 {result.sent}, 실패 {result.failed}, "
            f"재시도 중단 {len(result.dead_lettered)}"
        )
        return result

    @staticmethod
    def _is_open(delivery) -> bool:
        return bool(delivery) and not delivery.is_sent and not delivery.dead_lettered

    def _storage_failure(self, item: PendingDelivery, error: Exception) -> DeliveryFailure:
        logger.error(f"발송 행 처리 중 DB 오류: delivery={item.delivery_id} - {error}")
        return DeliveryFailure(
            delivery_id=item.delivery_id,
            user_id=item.user_id,
            email=item.email,
            content_id=item.content_id,
            title=item.title,
            day_number=item.day_number,
            reason=f"storage error: {error}",
        )

    def _process(self, item: PendingDelivery, result: DeliveryCycleResult) -> None:
        """
        대기 행 1건 처리

        확인 트랜잭션 -> 발송 (트랜잭션 없음) -> 기록 트랜잭션 순서로 진행한다.
        발송 중에는 DB 잠금을 잡지 않으며, 기록 시 행 상태를 다시 확인한다.
        """
        contact = Contact(user_id=item.user_id, name=item.name, email=item.email, phone=item.phone)
        payload = ContentPayload(
            content_id=item.content_id,
            title=item.title,
            body=item.content_text or "",
            description=item.description,
            day_number=item.day_number,
        )

        try:
            with self.db.session() as session:
                if not self._is_open(DeliveryRepository.get_for_update(session, item.delivery_id)):
                    logger.debug(f"이미 처리된 발송 행 건너뜀: {item.delivery_id}")
                    return
        except SQLAlchemyError as e:
            result.failures.append(self._storage_failure(item, e))
            return

        send_result = self._dispatch(contact, payload)

        failure = None
        dead_lettered = False
        sent = False
        warning = None

        try:
            with self.db.session() as session:
                delivery = DeliveryRepository.get_for_update(session, item.delivery_id)
                if not self._is_open(delivery):
                    logger.warning(f"발송 중 다른 작업이 행을 처리함: delivery={item.delivery_id}")
                    return

                now = self.clock()

                if send_result.success:
                    DeliveryRepository.mark_sent(session, delivery, now)

                    next_day = delivery.day_number + 1
                    if ContentRepository.exists(session, delivery.topic_id, next_day):
                        if not DeliveryRepository.has_pending(session, delivery.user_id, delivery.topic_id):
                            DeliveryRepository.create(
                                session, delivery.user_id, delivery.topic_id, next_day, now
                            )
                    else:
                        logger.info(
                            f"토픽 전체 발송 완료: user={item.user_id} topic={item.topic_id} "
                            f"(마지막 {delivery.day_number}일차)"
                        )

                    warning = self._write_audit_log(session, item, now)
                    sent = True
                else:
                    reason = send_result.error_message or "dispatch failed"
                    dead_lettered = DeliveryRepository.record_failure(
                        session, delivery, reason, now, self.max_attempts
                    )
                    failure = DeliveryFailure(
                        delivery_id=item.delivery_id,
                        user_id=item.user_id,
                        email=item.email,
                        content_id=item.content_id,
                        title=item.title,
                        day_number=item.day_number,
                        reason=reason,
                        attempts=delivery.attempts,
                    )
        except SQLAlchemyError as e:
            sent = False
            failure = self._storage_failure(item, e)
            dead_lettered = False

        if sent:
            result.sent += 1
            logger.info(f"발송 완료: {item.email} - {item.title} ({item.day_number}일차)")
        if warning:
            result.advisory_warnings.append(warning)
        if failure:
            result.failures.append(failure)
            logger.warning(f"발송 실패: {item.email} - {item.title}: {failure.reason}")
        if dead_lettered:
            result.dead_lettered.append(failure)
            logger.error(
                f"재시도 한도 도달, 발송 중단: delivery={item.delivery_id} "
                f"({failure.attempts}회 시도)"
            )
            self._raise_alert(failure, item)

    def _dispatch(self, contact: Contact, payload: ContentPayload) -> SendResult:
        """타임아웃을 적용한 발송 (초과 시 실패로 간주)"""
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.dispatcher.send, contact, payload)
        try:
            return future.result(timeout=self.dispatch_timeout)
        except FutureTimeout:
            return SendResult(
                recipient=contact.email,
                success=False,
                error_message=f"dispatch timed out after {self.dispatch_timeout}s",
            )
        except Exception as e:
            return SendResult(recipient=contact.email, success=False, error_message=str(e))
        finally:
            executor.shutdown(wait=False)

    def _write_audit_log(self, session, item: PendingDelivery, now: datetime) -> Optional[str]:
        """감사 로그 기록 (SAVEPOINT 안에서 실패해도 발송 처리는 유지)"""
        try:
            with session.begin_nested():
                SchedulerLogRepository.create(session, item.user_id, item.content_id, "sent", now)
        except SQLAlchemyError as e:
            logger.warning(f"감사 로그 기록 실패: delivery={item.delivery_id} - {e}")
            return f"audit log not written for delivery {item.delivery_id}: {e}"
        return None

    def _raise_alert(self, failure: DeliveryFailure, item: PendingDelivery) -> None:
        if not self.alert_notifier:
            return
        self.alert_notifier.send_alert(
            build_dead_letter_alert(
                user_email=failure.email,
                topic_id=item.topic_id,
                day_number=failure.day_number,
                attempts=failure.attempts,
                error_message=failure.reason,
            )
        )

    def get_scheduler_stats(self, user_id: int = None, limit: int = None) -> SchedulerStats:
        """대기 건수, 오늘 발송 건수, 최근 발송 내역 (읽기 전용)"""
        limit = settings.recent_deliveries_limit if limit is None else limit
        now = self.clock()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)

        with self.db.session() as session:
            pending = DeliveryRepository.count_pending(session, user_id)
            sent_today = DeliveryRepository.count_sent_between(session, day_start, day_end, user_id)
            recent = [
                RecentDelivery(
                    user_id=row[0],
                    email=row[1],
                    title=row[2],
                    delivered_on=row[3],
                    day_number=row[4],
                )
                for row in DeliveryRepository.recent_sent(session, limit, user_id)
            ]

        return SchedulerStats(pending=pending, sent_today=sent_today, recent=recent)

    def topic_progress(self, user_id: int, topic_id: int) -> TopicProgress:
        """
        토픽 학습 진도 조회

        이용권이 있거나 발송이 예약된 토픽만 조회할 수 있다.

        Raises:
            ValidationError: 잘못된 ID
            NotFoundError: 토픽이 없거나 사용자가 이용하지 않는 토픽
        """
        for name, value in (("user_id", user_id), ("topic_id", topic_id)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValidationError(f"{name} must be a positive integer", details={"field": name})

        with self.db.session() as session:
            topic = TopicRepository.get_by_id(session, topic_id)
            if not topic:
                raise NotFoundError("Topic not found")

            deliveries = DeliveryRepository.list_for_user_topic(session, user_id, topic_id)
            if not deliveries and not UserTopicRepository.get(session, user_id, topic_id):
                raise NotFoundError("Topic not assigned to this user")

            sent_by_day = {d.day_number: d for d in deliveries if d.is_sent}
            pending = next((d for d in deliveries if not d.is_sent), None)
            contents = ContentRepository.list_for_topic(session, topic_id)

            return TopicProgress(
                topic_id=topic.id,
                topic_name=topic.name,
                total_days=len(contents),
                current_day=max(sent_by_day) if sent_by_day else 0,
                contents=[
                    ContentProgress(
                        day_number=c.day_number,
                        title=c.title,
                        description=c.description,
                        is_sent=c.day_number in sent_by_day,
                        delivered_on=sent_by_day[c.day_number].delivered_on if c.day_number in sent_by_day else None,
                    )
                    for c in contents
                ],
                next_delivery_day=pending.day_number if pending else None,
                next_delivery_created_at=pending.created_at if pending else None,
            )
