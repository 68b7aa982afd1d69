"""
무료 체험판 활성화
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from ..config import settings
from ..database import (
    Database,
    HistoryAction,
    UserRepository,
    SubscriptionRepository,
    PaymentRepository,
    PreferenceRepository,
    TopicRepository,
    DeliveryRepository,
)
from ..exceptions import ErrorCode, ValidationError, NotFoundError, ConflictError
from .topics import parse_topic_ids

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = ("role", "industry", "language", "preferred_mode", "frequency")


@dataclass
class TrialActivation:
    """체험판 활성화 결과"""
    payment_id: int
    subscription_id: int
    trial_end_date: datetime
    seeded_topic_ids: list[int] = field(default_factory=list)
    skipped_topics: list[Any] = field(default_factory=list)


class TrialActivator:
    """사용자당 1회 무료 체험판 활성화"""

    def __init__(
        self,
        db: Database,
        clock: Callable[[], datetime] = datetime.now,
        trial_plan_name: str = None,
        trial_days: int = None,
        currency: str = None
    ):
        self.db = db
        self.clock = clock
        self.trial_plan_name = trial_plan_name or settings.trial_plan_name
        self.trial_days = settings.trial_days if trial_days is None else trial_days
        self.currency = currency or settings.default_currency

    def activate_trial(
        self,
        user_id: int,
        plan_name: str,
        preferences: Optional[dict] = None
    ) -> TrialActivation:
        """
        체험판 활성화

        결제 기록, 구독, 선호 설정, 이력, 1일차 발송 행을 하나의 트랜잭션으로 생성한다.
        거부 사유가 있으면 아무것도 기록하지 않는다.

        Args:
            user_id: 사용자 ID
            plan_name: 요금제 이름 (체험판 이름과 정확히 일치해야 함)
            preferences: role, industry, language, preferred_mode, frequency, topics

        Returns:
            TrialActivation

        Raises:
            ValidationError: user_id 누락
            ConflictError: invalid_plan, active_subscription_exists, duplicate_trial
            NotFoundError: 사용자 없음
        """
        if not user_id:
            raise ValidationError("User ID is required", details={"field": "user_id"})

        if plan_name != self.trial_plan_name:
            raise ConflictError("Invalid plan for free trial", ErrorCode.INVALID_PLAN)

        preferences = preferences or {}
        selection = parse_topic_ids(preferences.get("topics"))
        now = self.clock()
        trial_end = now + timedelta(days=self.trial_days)

        with self.db.session() as session:
            # 같은 사용자의 동시 활성화 직렬화
            if not UserRepository.lock(session, user_id):
                raise NotFoundError("User not found")

            if SubscriptionRepository.get_active(session, user_id):
                raise ConflictError(
                    "User already has an active subscription",
                    ErrorCode.ACTIVE_SUBSCRIPTION_EXISTS
                )

            if SubscriptionRepository.has_used_plan(session, user_id, self.trial_plan_name):
                raise ConflictError("Free trial already used", ErrorCode.DUPLICATE_TRIAL)

            # 1. 0원 결제 기록
            payment = PaymentRepository.create(
                session,
                user_id=user_id,
                amount=0.0,
                currency=self.currency,
                status="completed",
                payment_method="free_trial",
                now=now,
                provider_payment_id=f"trial_{int(now.timestamp() * 1000)}_{user_id}",
            )

            # 2. 구독 생성
            subscription = SubscriptionRepository.create(
                session,
                user_id=user_id,
                plan_name=self.trial_plan_name,
                start_date=now,
                next_renewal_date=trial_end,
                amount=0.0,
                currency=self.currency,
                auto_renewal=False,
                trial_end_date=trial_end,
            )

            # 3. 결제-구독 연결
            PaymentRepository.attach_subscription(session, payment, subscription.id, now)

            # 4. 선호 설정
            if any(preferences.get(name) for name in PREFERENCE_FIELDS):
                PreferenceRepository.upsert(session, user_id, preferences, now)

            # 5. 이력
            SubscriptionRepository.add_history(
                session,
                subscription_id=subscription.id,
                user_id=user_id,
                action=HistoryAction.NEW_SUBSCRIPTION,
                new_plan=self.trial_plan_name,
                amount=0.0,
                now=now,
                reason="Free trial activation",
            )

            # 6. 토픽별 1일차 발송 행
            known_ids = TopicRepository.existing_ids(session, selection.topic_ids)
            seeded = []
            skipped = list(selection.skipped)
            for topic_id in selection.topic_ids:
                if topic_id not in known_ids:
                    skipped.append(topic_id)
                    continue
                if not DeliveryRepository.has_pending(session, user_id, topic_id):
                    DeliveryRepository.create(session, user_id, topic_id, 1, now)
                seeded.append(topic_id)

            result = TrialActivation(
                payment_id=payment.id,
                subscription_id=subscription.id,
                trial_end_date=subscription.trial_end_date,
                seeded_topic_ids=seeded,
                skipped_topics=skipped,
            )

        if result.skipped_topics:
            logger.warning(f"체험판 토픽 항목 제외: user={user_id} {result.skipped_topics}")
        logger.info(
            f"체험판 활성화: user={user_id} subscription={result.subscription_id} "
            f"topics={result.seeded_topic_ids}"
        )
        return result
