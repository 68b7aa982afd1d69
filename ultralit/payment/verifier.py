"""
결제 검증 - 서명 확인 후 결제 기록 및 구독 활성화
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import settings
from ..database import (
    Database,
    HistoryAction,
    SubscriptionStatus,
    UserRepository,
    PlanRepository,
    SubscriptionRepository,
    PaymentRepository,
)
from ..exceptions import (
    UltralitError,
    ValidationError,
    NotFoundError,
    InvalidSignatureError,
    ConfigurationError,
    InfrastructureError,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

DEFAULT_PLAN_NAME = "Premium"


@dataclass
class PaymentVerification:
    """결제 검증 결과"""
    payment_id: int
    subscription_id: Optional[int]
    provider_payment_id: str
    next_renewal_date: Optional[datetime] = None
    already_processed: bool = False


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Razorpay 방식 서명: HMAC-SHA256(order_id|payment_id) 16진수"""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class PaymentVerifier:
    """
    결제 서명 검증 및 구독 활성화

    발송 행은 생성하지 않는다. 토픽 발송 예약은 호출한 흐름의 책임이다.
    """

    def __init__(
        self,
        db: Database,
        key_secret: str = None,
        clock: Callable[[], datetime] = datetime.now,
        subscription_days: int = None
    ):
        self.db = db
        self.key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self.clock = clock
        self.subscription_days = settings.subscription_days if subscription_days is None else subscription_days

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """서명 일치 여부 (상수 시간 비교)"""
        if not self.key_secret:
            raise ConfigurationError("Payment secret is not configured")
        expected = compute_signature(order_id, payment_id, self.key_secret)
        return hmac.compare_digest(expected.encode(), (signature or "").strip().lower().encode())

    def verify_and_activate(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        user_id: int,
        amount,
        currency: str = None,
        topic_id: int = None,
        subscription_id: int = None,
        plan_name: str = None
    ) -> PaymentVerification:
        """
        결제 검증 및 구독 활성화

        서명이 맞으면 하나의 트랜잭션에서 결제 기록 후
        subscription_id 가 있으면 해당 구독을 갱신하고, 없으면 새 구독을 만든다.
        이미 기록된 payment_id 는 아무것도 쓰지 않고 already_processed 로 반환한다.

        Raises:
            ValidationError: 필수 값 누락 또는 금액 형식 오류
            ConfigurationError: 서버 비밀키 미설정
            InvalidSignatureError: 서명 불일치 (기록 없음)
            NotFoundError: 사용자 또는 구독 없음
            InfrastructureError: 저장 실패 (롤백됨)
        """
        missing = [
            name for name, value in (
                ("order_id", order_id),
                ("payment_id", payment_id),
                ("signature", signature),
                ("user_id", user_id),
            )
            if not value
        ]
        if missing:
            raise ValidationError("Missing required payment fields", details={"missing": missing})

        try:
            amount = float(amount)
        except (TypeError, ValueError):
            raise ValidationError("Amount must be numeric", details={"field": "amount"})

        if not self.verify_signature(order_id, payment_id, signature):
            security_logger.warning(f"결제 서명 불일치: order={order_id} payment={payment_id} user={user_id}")
            raise InvalidSignatureError("Invalid payment signature")

        currency = currency or settings.default_currency

        try:
            return self._record(
                order_id, payment_id, user_id, amount, currency,
                topic_id, subscription_id, plan_name
            )
        except IntegrityError:
            # 동시 요청이 같은 payment_id 를 먼저 기록
            existing = self._find_existing(payment_id)
            if existing:
                return existing
            logger.exception(f"결제 기록 실패: payment={payment_id}")
            raise InfrastructureError("Payment could not be recorded")
        except UltralitError:
            raise
        except SQLAlchemyError as e:
            logger.exception(f"결제 기록 실패: payment={payment_id}")
            raise InfrastructureError("Payment could not be recorded", original_error=e)

    def _find_existing(self, payment_id: str) -> Optional[PaymentVerification]:
        with self.db.session() as session:
            payment = PaymentRepository.get_by_provider_payment_id(session, payment_id)
            if not payment:
                return None
            return PaymentVerification(
                payment_id=payment.id,
                subscription_id=payment.subscription_id,
                provider_payment_id=payment_id,
                already_processed=True,
            )

    def _record(
        self,
        order_id: str,
        payment_id: str,
        user_id: int,
        amount: float,
        currency: str,
        topic_id: Optional[int],
        subscription_id: Optional[int],
        plan_name: Optional[str]
    ) -> PaymentVerification:
        now = self.clock()

        with self.db.session() as session:
            if not UserRepository.lock(session, user_id):
                raise NotFoundError("User not found")

            existing = PaymentRepository.get_by_provider_payment_id(session, payment_id)
            if existing:
                logger.info(f"이미 처리된 결제: {payment_id}")
                return PaymentVerification(
                    payment_id=existing.id,
                    subscription_id=existing.subscription_id,
                    provider_payment_id=payment_id,
                    already_processed=True,
                )

            plan = PlanRepository.get_by_name(session, plan_name) if plan_name else None
            duration_days = plan.duration_days if plan and plan.duration_days else self.subscription_days
            renewal = now + timedelta(days=duration_days)

            payment = PaymentRepository.create(
                session,
                user_id=user_id,
                amount=amount,
                currency=currency,
                status="success",
                payment_method="razorpay",
                now=now,
                provider_payment_id=payment_id,
                provider_order_id=order_id,
                payment_type="topic_purchase" if topic_id else "subscription",
                topic_id=topic_id,
            )

            if subscription_id:
                subscription = SubscriptionRepository.get_by_id(session, subscription_id)
                if not subscription or subscription.user_id != user_id:
                    raise NotFoundError("Subscription not found")

                previous_plan = subscription.plan_name
                # 활성 구독은 사용자당 하나만 유지
                for other in SubscriptionRepository.replace_active(session, user_id, now):
                    if other.id != subscription.id:
                        logger.info(f"기존 구독 대체: subscription={other.id}")

                subscription.plan_name = plan_name or subscription.plan_name
                subscription.status = SubscriptionStatus.ACTIVE
                subscription.is_active = True
                subscription.start_date = now
                subscription.next_renewal_date = renewal
                subscription.end_date = renewal
                subscription.amount = amount
                subscription.currency = currency
                subscription.updated_at = now
                session.flush()

                action = HistoryAction.UPGRADE
                reason = "Plan upgrade payment"
            else:
                replaced = SubscriptionRepository.replace_active(session, user_id, now)
                previous_plan = replaced[0].plan_name if replaced else None

                subscription = SubscriptionRepository.create(
                    session,
                    user_id=user_id,
                    plan_name=plan_name or DEFAULT_PLAN_NAME,
                    start_date=now,
                    next_renewal_date=renewal,
                    amount=amount,
                    currency=currency,
                    auto_renewal=True,
                )
                action = HistoryAction.NEW_SUBSCRIPTION
                reason = "Paid subscription"

            PaymentRepository.attach_subscription(session, payment, subscription.id, now)
            SubscriptionRepository.add_history(
                session,
                subscription_id=subscription.id,
                user_id=user_id,
                action=action,
                new_plan=subscription.plan_name,
                amount=amount,
                now=now,
                previous_plan=previous_plan,
                reason=reason,
            )

            result = PaymentVerification(
                payment_id=payment.id,
                subscription_id=subscription.id,
                provider_payment_id=payment_id,
                next_renewal_date=renewal,
            )

        logger.info(
            f"결제 검증 완료: user={user_id} payment={payment_id} "
            f"subscription={result.subscription_id} ({action.value})"
        )
        return result
