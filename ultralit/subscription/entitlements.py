"""
이용권 관리 - 구독 상태, 토픽 구매/교체, 선호 설정, 결제 이력, 요금제 조회
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError

from ..config import settings
from ..database import (
    Database,
    HistoryAction,
    SubscriptionStatus,
    UserRepository,
    PlanRepository,
    TopicRepository,
    SubscriptionRepository,
    PaymentRepository,
    UserTopicRepository,
    PreferenceRepository,
    DeliveryRepository,
)
from ..exceptions import (
    ErrorCode,
    ValidationError,
    NotFoundError,
    ConflictError,
    EntitlementIntegrityError,
)
from .topics import parse_topic_ids

logger = logging.getLogger(__name__)

GENERAL_SUBSCRIPTION = "General Subscription"


@dataclass
class SubscriptionState:
    """구독 상태 조회 결과"""
    has_subscription: bool
    is_active: bool = False
    subscription_id: Optional[int] = None
    plan_name: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    next_renewal_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    auto_renewal: bool = False
    topics: list[str] = field(default_factory=list)


@dataclass
class TopicPurchase:
    """토픽 구매 결과"""
    user_topic_id: int
    payment_id: int
    topic_id: int
    expires_at: Optional[datetime]
    delivery_seeded: bool


@dataclass
class TopicEntitlement:
    """사용자 토픽 이용권"""
    topic_id: int
    topic_name: str
    plan_name: Optional[str]
    payment_status: Optional[str]
    amount_paid: float
    purchased_date: Optional[datetime]
    expires_at: Optional[datetime]
    status: str

    @property
    def is_lifetime(self) -> bool:
        return self.expires_at is None


@dataclass
class PaymentRecord:
    """결제 이력 항목"""
    id: int
    amount: float
    currency: str
    status: str
    payment_method: Optional[str]
    payment_type: Optional[str]
    topic_name: str
    provider_payment_id: Optional[str]
    subscription_id: Optional[int]
    created_at: Optional[datetime]


@dataclass
class PlanInfo:
    """요금제 정보"""
    name: str
    display_name: Optional[str]
    description: Optional[str]
    amount: float
    currency: str
    duration_days: int
    max_topics: Optional[int]
    features: list[str]
    is_trial: bool


@dataclass
class PreferenceInfo:
    """학습 선호 설정"""
    user_id: int
    role: Optional[str]
    industry: Optional[str]
    language: Optional[str]
    preferred_mode: Optional[str]
    frequency: Optional[str]
    updated_at: Optional[datetime]


def _require_id(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer", details={"field": name})
    return value


class EntitlementService:
    """토픽 이용권과 구독 상태 관리"""

    def __init__(
        self,
        db: Database,
        clock: Callable[[], datetime] = datetime.now,
        topic_access_days: int = None,
        lifetime_duration_days: int = None,
        currency: str = None
    ):
        self.db = db
        self.clock = clock
        self.topic_access_days = settings.topic_access_days if topic_access_days is None else topic_access_days
        self.lifetime_duration_days = settings.lifetime_duration_days if lifetime_duration_days is None else lifetime_duration_days
        self.currency = currency or settings.default_currency

    def _status_of(self, expires_at: Optional[datetime], now: datetime) -> str:
        if expires_at is None or expires_at > now:
            return "active"
        return "expired"

    def check_subscription(self, user_id: int) -> SubscriptionState:
        """
        최신 구독 상태 조회

        자동 갱신이 꺼진 구독의 갱신일이 지났으면 만료 처리 후 이력을 남긴다.
        """
        _require_id(user_id, "user_id")
        now = self.clock()

        with self.db.session() as session:
            if not UserRepository.get_by_id(session, user_id):
                raise NotFoundError("User not found")

            topics = [
                topic.name
                for user_topic, topic in UserTopicRepository.list_for_user(session, user_id)
                if self._status_of(user_topic.expires_at, now) == "active"
            ]

            subscription = SubscriptionRepository.get_latest(session, user_id)
            if not subscription:
                return SubscriptionState(has_subscription=False, topics=topics)

            if (
                subscription.status == SubscriptionStatus.ACTIVE
                and subscription.next_renewal_date
                and subscription.next_renewal_date < now
                and not subscription.auto_renewal
            ):
                SubscriptionRepository.mark_expired(session, subscription, now)
                SubscriptionRepository.add_history(
                    session,
                    subscription_id=subscription.id,
                    user_id=user_id,
                    action=HistoryAction.EXPIRED,
                    new_plan=subscription.plan_name,
                    amount=subscription.amount or 0.0,
                    now=now,
                    previous_plan=subscription.plan_name,
                    reason="Subscription period ended",
                )
                logger.info(f"구독 만료 처리: user={user_id} subscription={subscription.id}")

            return SubscriptionState(
                has_subscription=True,
                is_active=bool(
                    subscription.is_active and subscription.status == SubscriptionStatus.ACTIVE
                ),
                subscription_id=subscription.id,
                plan_name=subscription.plan_name,
                status=subscription.status.value,
                start_date=subscription.start_date,
                next_renewal_date=subscription.next_renewal_date,
                trial_end_date=subscription.trial_end_date,
                auto_renewal=bool(subscription.auto_renewal),
                topics=topics,
            )

    def purchase_topic(
        self,
        user_id: int,
        topic_id: int,
        plan_name: str = None,
        amount: float = 0.0,
        payment_status: str = "completed",
        duration_days: int = None
    ) -> TopicPurchase:
        """
        토픽 이용권 구매

        이용권, 결제 기록, 1일차 발송 행을 하나의 트랜잭션으로 생성한다.
        duration_days 가 평생 이용 값(9999)이면 만료일이 없다.

        Raises:
            ValidationError: 잘못된 ID 또는 금액
            NotFoundError: 사용자 없음
            EntitlementIntegrityError: 카탈로그에 없는 토픽
            ConflictError: already_purchased
        """
        _require_id(user_id, "user_id")
        _require_id(topic_id, "topic_id")
        try:
            amount = float(amount or 0.0)
        except (TypeError, ValueError):
            raise ValidationError("Amount must be numeric", details={"field": "amount"})
        if amount < 0:
            raise ValidationError("Amount must not be negative", details={"field": "amount"})

        duration_days = self.topic_access_days if duration_days is None else duration_days
        now = self.clock()
        expires_at = None
        if duration_days != self.lifetime_duration_days:
            expires_at = now + timedelta(days=duration_days)

        try:
            with self.db.session() as session:
                if not UserRepository.get_by_id(session, user_id):
                    raise NotFoundError("User not found")

                if not TopicRepository.get_by_id(session, topic_id):
                    raise EntitlementIntegrityError("Topic does not exist", invalid_ids=[topic_id])

                if UserTopicRepository.get(session, user_id, topic_id):
                    raise ConflictError("Topic already purchased", ErrorCode.ALREADY_PURCHASED)

                user_topic = UserTopicRepository.create(
                    session,
                    user_id=user_id,
                    topic_id=topic_id,
                    purchased_date=now,
                    expires_at=expires_at,
                    plan_name=plan_name,
                    amount_paid=amount,
                    payment_status=payment_status,
                )

                payment = PaymentRepository.create(
                    session,
                    user_id=user_id,
                    amount=amount,
                    currency=self.currency,
                    status=payment_status,
                    payment_method="topic_purchase",
                    now=now,
                    payment_type="topic_purchase",
                    topic_id=topic_id,
                )

                delivery_seeded = False
                if not DeliveryRepository.has_pending(session, user_id, topic_id):
                    DeliveryRepository.create(session, user_id, topic_id, 1, now)
                    delivery_seeded = True

                result = TopicPurchase(
                    user_topic_id=user_topic.id,
                    payment_id=payment.id,
                    topic_id=topic_id,
                    expires_at=expires_at,
                    delivery_seeded=delivery_seeded,
                )
        except IntegrityError:
            # 동시 구매로 (user, topic) 제약 위반
            raise ConflictError("Topic already purchased", ErrorCode.ALREADY_PURCHASED)

        logger.info(f"토픽 구매: user={user_id} topic={topic_id} 만료={expires_at or '평생'}")
        return result

    def list_user_topics(self, user_id: int) -> list[TopicEntitlement]:
        """사용자 토픽 이용권 목록 (상태는 조회 시점 기준)"""
        _require_id(user_id, "user_id")
        now = self.clock()

        with self.db.session() as session:
            return [
                TopicEntitlement(
                    topic_id=topic.id,
                    topic_name=topic.name,
                    plan_name=user_topic.plan_name,
                    payment_status=user_topic.payment_status,
                    amount_paid=user_topic.amount_paid or 0.0,
                    purchased_date=user_topic.purchased_date,
                    expires_at=user_topic.expires_at,
                    status=self._status_of(user_topic.expires_at, now),
                )
                for user_topic, topic in UserTopicRepository.list_for_user(session, user_id)
            ]

    def replace_user_topics(self, user_id: int, topic_ids: list) -> list[int]:
        """
        사용자 토픽 구성을 통째로 교체

        모든 ID 가 양의 정수이고 카탈로그에 존재해야 한다. 처음 선택된 토픽은
        1일차 발송 행이 생성된다.

        Returns:
            저장된 토픽 ID 목록

        Raises:
            ValidationError: 목록이 아니거나 형식이 잘못된 ID 포함 (details.invalid_ids)
            EntitlementIntegrityError: 카탈로그에 없는 ID 포함
        """
        _require_id(user_id, "user_id")
        if not isinstance(topic_ids, list):
            raise ValidationError("topic_ids must be a list", details={"field": "topic_ids"})

        selection = parse_topic_ids(topic_ids)
        if selection.skipped:
            raise ValidationError(
                "Topic IDs must be positive integers",
                details={"invalid_ids": selection.skipped},
            )

        now = self.clock()
        with self.db.session() as session:
            if not UserRepository.get_by_id(session, user_id):
                raise NotFoundError("User not found")

            known_ids = TopicRepository.existing_ids(session, selection.topic_ids)
            missing = [t for t in selection.topic_ids if t not in known_ids]
            if missing:
                raise EntitlementIntegrityError("Unknown topic IDs", invalid_ids=missing)

            # 활성 구독이 있으면 갱신일까지, 없으면 기본 이용 기간
            subscription = SubscriptionRepository.get_active(session, user_id)
            if subscription and subscription.next_renewal_date:
                expires_at = subscription.next_renewal_date
                plan_name = subscription.plan_name
            else:
                expires_at = now + timedelta(days=self.topic_access_days)
                plan_name = None

            UserTopicRepository.delete_for_user(session, user_id)
            for topic_id in selection.topic_ids:
                UserTopicRepository.create(
                    session,
                    user_id=user_id,
                    topic_id=topic_id,
                    purchased_date=now,
                    expires_at=expires_at,
                    plan_name=plan_name,
                )
                if not DeliveryRepository.list_for_user_topic(session, user_id, topic_id):
                    DeliveryRepository.create(session, user_id, topic_id, 1, now)

        logger.info(f"토픽 구성 교체: user={user_id} topics={selection.topic_ids}")
        return selection.topic_ids

    def save_preferences(
        self,
        user_id: int,
        role: str,
        industry: str,
        language: str,
        preferred_mode: str = None,
        frequency: str = None
    ) -> PreferenceInfo:
        """학습 선호 설정 저장 (role, industry, language 필수)"""
        _require_id(user_id, "user_id")
        values = {
            "role": (role or "").strip(),
            "industry": (industry or "").strip(),
            "language": (language or "").strip(),
            "preferred_mode": (preferred_mode or "").strip(),
            "frequency": (frequency or "").strip(),
        }
        missing = [name for name in ("role", "industry", "language") if not values[name]]
        if missing:
            raise ValidationError("Missing required fields", details={"missing": missing})

        now = self.clock()
        with self.db.session() as session:
            if not UserRepository.get_by_id(session, user_id):
                raise NotFoundError("User not found")

            preference = PreferenceRepository.upsert(session, user_id, values, now)
            return PreferenceInfo(
                user_id=user_id,
                role=preference.role,
                industry=preference.industry,
                language=preference.language,
                preferred_mode=preference.preferred_mode,
                frequency=preference.frequency,
                updated_at=preference.updated_at,
            )

    def payment_history(self, user_id: int) -> list[PaymentRecord]:
        """결제 이력 (최신순)"""
        _require_id(user_id, "user_id")

        with self.db.session() as session:
            return [
                PaymentRecord(
                    id=payment.id,
                    amount=payment.amount or 0.0,
                    currency=payment.currency,
                    status=payment.status,
                    payment_method=payment.payment_method,
                    payment_type=payment.payment_type,
                    topic_name=topic_name or GENERAL_SUBSCRIPTION,
                    provider_payment_id=payment.provider_payment_id,
                    subscription_id=payment.subscription_id,
                    created_at=payment.created_at,
                )
                for payment, topic_name in PaymentRepository.history_for_user(session, user_id)
            ]

    def list_plans(self) -> list[PlanInfo]:
        """활성 요금제 목록 (정렬 순서, 금액 순)"""
        with self.db.session() as session:
            return [
                PlanInfo(
                    name=plan.name,
                    display_name=plan.display_name,
                    description=plan.description,
                    amount=plan.amount or 0.0,
                    currency=plan.currency,
                    duration_days=plan.duration_days,
                    max_topics=plan.max_topics,
                    features=json.loads(plan.features) if plan.features else [],
                    is_trial=bool(plan.is_trial),
                )
                for plan in PlanRepository.list_active(session)
            ]
