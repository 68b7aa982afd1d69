"""
데이터베이스 저장소 패턴 구현
"""

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import create_engine, event, and_, func
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .models import (
    Base,
    User,
    OtpCode,
    Plan,
    Topic,
    Content,
    Subscription,
    SubscriptionHistory,
    SubscriptionStatus,
    HistoryAction,
    Payment,
    UserTopic,
    UserPreference,
    UserContentDelivery,
    SchedulerLog,
)

logger = logging.getLogger(__name__)


class Database:
    """엔진과 세션 팩토리 (프로세스 시작 시 1회 생성 후 각 서비스에 주입)"""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url

        engine_kwargs = {"echo": echo}

        if database_url.startswith("sqlite"):
            # data 디렉토리 생성
            if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
                db_path = database_url.replace("sqlite:///", "")
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            else:
                # 인메모리 DB 는 모든 세션이 같은 연결을 공유해야 함
                engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}

        self.engine = create_engine(database_url, **engine_kwargs)

        if database_url.startswith("sqlite"):
            _enable_sqlite_transactions(self.engine)

        self._SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    def create_all(self) -> None:
        """테이블 생성 및 기본 요금제 초기화"""
        Base.metadata.create_all(bind=self.engine)
        self._init_default_plans()

    def dispose(self) -> None:
        """연결 풀 해제"""
        self.engine.dispose()

    @contextmanager
    def session(self):
        """세션 컨텍스트 매니저 (성공 시 커밋, 예외 시 롤백, 항상 반환)"""
        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _init_default_plans(self) -> None:
        """기본 요금제 데이터 삽입"""
        with self.session() as session:
            if session.query(Plan).count() > 0:
                return

            default_plans = [
                Plan(
                    name="Free Trial",
                    display_name="7일 무료 체험",
                    description="모든 토픽을 7일간 무료로 받아보기",
                    amount=0.0,
                    currency="INR",
                    duration_days=7,
                    features=json.dumps(["일일 콘텐츠 발송", "토픽 선택"], ensure_ascii=False),
                    is_trial=True,
                    sort_order=0,
                ),
                Plan(
                    name="Students",
                    display_name="Students",
                    description="학생용 월간 요금제",
                    amount=200.0,
                    currency="INR",
                    duration_days=30,
                    features=json.dumps(["일일 콘텐츠 발송", "토픽 선택", "학습 진도 확인"], ensure_ascii=False),
                    sort_order=1,
                ),
                Plan(
                    name="Professionals & Executives",
                    display_name="Professionals & Executives",
                    description="직장인용 월간 요금제",
                    amount=500.0,
                    currency="INR",
                    duration_days=30,
                    features=json.dumps(["일일 콘텐츠 발송", "토픽 무제한", "학습 진도 확인"], ensure_ascii=False),
                    sort_order=2,
                ),
            ]

            for plan in default_plans:
                session.add(plan)


def _enable_sqlite_transactions(engine) -> None:
    """pysqlite 의 트랜잭션 처리를 SQLAlchemy 에 맡겨 SAVEPOINT 가 동작하도록 설정"""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


# 프로세스 기본 데이터베이스 (CLI / 웹 진입점용)
_db: Optional[Database] = None


def init_db(database_url: str = "sqlite:///./data/ultralit.db") -> Database:
    """기본 데이터베이스 초기화"""
    global _db

    _db = Database(database_url)
    _db.create_all()
    logger.info(f"데이터베이스 초기화 완료: {database_url}")
    return _db


def get_db() -> Database:
    """기본 데이터베이스 반환"""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


@contextmanager
def get_session():
    """기본 데이터베이스 세션 컨텍스트 매니저"""
    with get_db().session() as session:
        yield session


@dataclass
class PendingDelivery:
    """발송 대기 행 (사용자 연락처 + 해당 일차 콘텐츠)"""
    delivery_id: int
    user_id: int
    topic_id: int
    day_number: int
    name: str
    email: str
    phone: Optional[str]
    content_id: int
    title: str
    description: Optional[str]
    content_text: Optional[str]
    created_at: datetime


class UserRepository:
    """사용자 저장소"""

    @staticmethod
    def create(
        session: Session,
        name: str,
        email: str,
        phone: str = None,
        zip_code: str = None,
        country: str = None,
        user_type: int = 1
    ) -> User:
        """사용자 생성"""
        user = User(
            name=name,
            email=email,
            phone=phone,
            zip_code=zip_code,
            country=country,
            user_type=user_type,
        )
        session.add(user)
        session.flush()
        return user

    @staticmethod
    def get_by_id(session: Session, user_id: int) -> Optional[User]:
        """ID 로 사용자 조회"""
        return session.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_by_email(session: Session, email: str) -> Optional[User]:
        """이메일로 사용자 조회"""
        return session.query(User).filter(User.email == email).first()

    @staticmethod
    def lock(session: Session, user_id: int) -> Optional[User]:
        """사용자 행 잠금 (같은 사용자의 동시 활성화 직렬화)"""
        return (
            session.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def touch_last_login(session: Session, user_id: int, now: datetime) -> None:
        """마지막 로그인 시간 갱신"""
        session.query(User).filter(User.id == user_id).update(
            {"last_login": now},
            synchronize_session=False
        )


class OtpRepository:
    """OTP 코드 저장소"""

    @staticmethod
    def get_by_email(session: Session, email: str) -> Optional[OtpCode]:
        """이메일로 OTP 조회"""
        return session.query(OtpCode).filter(OtpCode.email == email).first()

    @staticmethod
    def upsert(
        session: Session,
        user_id: int,
        email: str,
        code: str,
        expires_at: datetime,
        now: datetime
    ) -> OtpCode:
        """이메일 기준 OTP 생성 또는 교체 (이전 코드는 즉시 무효)"""
        otp = OtpRepository.get_by_email(session, email)

        if otp:
            otp.user_id = user_id
            otp.otp_code = code
            otp.expires_at = expires_at
            otp.is_used = False
            otp.created_at = now
        else:
            otp = OtpCode(
                user_id=user_id,
                email=email,
                otp_code=code,
                expires_at=expires_at,
                is_used=False,
                created_at=now,
            )
            session.add(otp)

        session.flush()
        return otp

    @staticmethod
    def mark_used(session: Session, otp_id: int) -> bool:
        """미사용 코드만 사용 처리, 실제로 전환되었으면 True"""
        updated = (
            session.query(OtpCode)
            .filter(and_(OtpCode.id == otp_id, OtpCode.is_used == False))
            .update({"is_used": True}, synchronize_session=False)
        )
        return updated > 0


class PlanRepository:
    """요금제 저장소"""

    @staticmethod
    def get_by_name(session: Session, name: str) -> Optional[Plan]:
        """이름으로 요금제 조회"""
        return session.query(Plan).filter(Plan.name == name).first()

    @staticmethod
    def list_active(session: Session) -> list[Plan]:
        """활성 요금제 목록"""
        return (
            session.query(Plan)
            .filter(Plan.is_active == True)
            .order_by(Plan.sort_order.asc(), Plan.amount.asc())
            .all()
        )


class TopicRepository:
    """토픽 저장소"""

    @staticmethod
    def create(session: Session, name: str, description: str = None, topic_type: str = None) -> Topic:
        """토픽 생성"""
        topic = Topic(name=name, description=description, topic_type=topic_type)
        session.add(topic)
        session.flush()
        return topic

    @staticmethod
    def get_by_id(session: Session, topic_id: int) -> Optional[Topic]:
        """ID 로 토픽 조회"""
        return session.query(Topic).filter(Topic.id == topic_id).first()

    @staticmethod
    def existing_ids(session: Session, topic_ids: Iterable[int]) -> set[int]:
        """카탈로그에 존재하는 토픽 ID 집합"""
        ids = list(topic_ids)
        if not ids:
            return set()
        rows = session.query(Topic.id).filter(Topic.id.in_(ids)).all()
        return {r[0] for r in rows}


class ContentRepository:
    """콘텐츠 저장소"""

    @staticmethod
    def create(
        session: Session,
        topic_id: int,
        day_number: int,
        title: str,
        content_text: str,
        description: str = None
    ) -> Content:
        """콘텐츠 생성"""
        content = Content(
            topic_id=topic_id,
            day_number=day_number,
            title=title,
            description=description,
            content_text=content_text,
        )
        session.add(content)
        session.flush()
        return content

    @staticmethod
    def exists(session: Session, topic_id: int, day_number: int) -> bool:
        """해당 일차 콘텐츠 존재 여부"""
        return (
            session.query(Content.id)
            .filter(and_(Content.topic_id == topic_id, Content.day_number == day_number))
            .first()
        ) is not None

    @staticmethod
    def list_for_topic(session: Session, topic_id: int, limit: int = None) -> list[Content]:
        """토픽의 전체 콘텐츠 (일차 순)"""
        query = (
            session.query(Content)
            .filter(Content.topic_id == topic_id)
            .order_by(Content.day_number.asc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()


class SubscriptionRepository:
    """구독 저장소"""

    @staticmethod
    def get_by_id(session: Session, subscription_id: int) -> Optional[Subscription]:
        """ID 로 구독 조회"""
        return session.query(Subscription).filter(Subscription.id == subscription_id).first()

    @staticmethod
    def get_active(session: Session, user_id: int) -> Optional[Subscription]:
        """활성 구독 조회 (status=active AND is_active)"""
        return (
            session.query(Subscription)
            .filter(
                and_(
                    Subscription.user_id == user_id,
                    Subscription.status == SubscriptionStatus.ACTIVE,
                    Subscription.is_active == True
                )
            )
            .order_by(Subscription.created_at.desc())
            .first()
        )

    @staticmethod
    def get_latest(session: Session, user_id: int) -> Optional[Subscription]:
        """가장 최근 구독 조회"""
        return (
            session.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first()
        )

    @staticmethod
    def has_used_plan(session: Session, user_id: int, plan_name: str) -> bool:
        """해당 요금제 이용 이력 여부"""
        return (
            session.query(Subscription.id)
            .filter(and_(Subscription.user_id == user_id, Subscription.plan_name == plan_name))
            .first()
        ) is not None

    @staticmethod
    def create(
        session: Session,
        user_id: int,
        plan_name: str,
        start_date: datetime,
        next_renewal_date: datetime,
        amount: float,
        currency: str,
        auto_renewal: bool,
        trial_end_date: datetime = None
    ) -> Subscription:
        """구독 생성"""
        subscription = Subscription(
            user_id=user_id,
            plan_name=plan_name,
            status=SubscriptionStatus.ACTIVE,
            start_date=start_date,
            next_renewal_date=next_renewal_date,
            end_date=next_renewal_date,
            trial_end_date=trial_end_date,
            amount=amount,
            currency=currency,
            is_active=True,
            auto_renewal=auto_renewal,
            created_at=start_date,
            updated_at=start_date,
        )
        session.add(subscription)
        session.flush()
        return subscription

    @staticmethod
    def replace_active(session: Session, user_id: int, now: datetime) -> list[Subscription]:
        """기존 활성 구독을 대체 상태로 전환"""
        replaced = (
            session.query(Subscription)
            .filter(
                and_(
                    Subscription.user_id == user_id,
                    Subscription.status == SubscriptionStatus.ACTIVE
                )
            )
            .all()
        )
        for subscription in replaced:
            subscription.status = SubscriptionStatus.REPLACED
            subscription.is_active = False
            subscription.updated_at = now
        session.flush()
        return replaced

    @staticmethod
    def mark_expired(session: Session, subscription: Subscription, now: datetime) -> None:
        """만료 처리"""
        subscription.status = SubscriptionStatus.EXPIRED
        subscription.is_active = False
        subscription.updated_at = now
        session.flush()

    @staticmethod
    def add_history(
        session: Session,
        subscription_id: int,
        user_id: int,
        action: HistoryAction,
        new_plan: str,
        amount: float,
        now: datetime,
        previous_plan: str = None,
        reason: str = None
    ) -> SubscriptionHistory:
        """구독 이력 기록"""
        history = SubscriptionHistory(
            subscription_id=subscription_id,
            user_id=user_id,
            action=action,
            previous_plan=previous_plan,
            new_plan=new_plan,
            amount=amount,
            reason=reason,
            created_at=now,
        )
        session.add(history)
        session.flush()
        return history


class PaymentRepository:
    """결제 원장 저장소"""

    @staticmethod
    def create(
        session: Session,
        user_id: int,
        amount: float,
        currency: str,
        status: str,
        payment_method: str,
        now: datetime,
        provider_payment_id: str = None,
        provider_order_id: str = None,
        payment_type: str = "subscription",
        topic_id: int = None,
        subscription_id: int = None
    ) -> Payment:
        """결제 기록 생성"""
        payment = Payment(
            user_id=user_id,
            topic_id=topic_id,
            subscription_id=subscription_id,
            provider_payment_id=provider_payment_id,
            provider_order_id=provider_order_id,
            amount=amount,
            currency=currency,
            status=status,
            payment_method=payment_method,
            payment_type=payment_type,
            created_at=now,
            updated_at=now,
        )
        session.add(payment)
        session.flush()
        return payment

    @staticmethod
    def attach_subscription(session: Session, payment: Payment, subscription_id: int, now: datetime) -> None:
        """결제에 구독 ID 연결"""
        payment.subscription_id = subscription_id
        payment.updated_at = now
        session.flush()

    @staticmethod
    def get_by_provider_payment_id(session: Session, provider_payment_id: str) -> Optional[Payment]:
        """결제사 결제 ID 로 조회"""
        return (
            session.query(Payment)
            .filter(Payment.provider_payment_id == provider_payment_id)
            .first()
        )

    @staticmethod
    def history_for_user(session: Session, user_id: int) -> list[tuple[Payment, Optional[str]]]:
        """사용자 결제 이력 (최신순, 토픽명 포함)"""
        return (
            session.query(Payment, Topic.name)
            .outerjoin(Topic, Topic.id == Payment.topic_id)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )


class UserTopicRepository:
    """토픽 이용권 저장소"""

    @staticmethod
    def get(session: Session, user_id: int, topic_id: int) -> Optional[UserTopic]:
        """사용자-토픽 이용권 조회"""
        return (
            session.query(UserTopic)
            .filter(and_(UserTopic.user_id == user_id, UserTopic.topic_id == topic_id))
            .first()
        )

    @staticmethod
    def create(
        session: Session,
        user_id: int,
        topic_id: int,
        purchased_date: datetime,
        expires_at: Optional[datetime],
        plan_name: str = None,
        amount_paid: float = 0.0,
        payment_status: str = "completed"
    ) -> UserTopic:
        """이용권 생성"""
        user_topic = UserTopic(
            user_id=user_id,
            topic_id=topic_id,
            plan_name=plan_name,
            payment_status=payment_status,
            amount_paid=amount_paid,
            purchased_date=purchased_date,
            expires_at=expires_at,
        )
        session.add(user_topic)
        session.flush()
        return user_topic

    @staticmethod
    def list_for_user(session: Session, user_id: int) -> list[tuple[UserTopic, Topic]]:
        """사용자 이용권 목록 (최근 구매순)"""
        return (
            session.query(UserTopic, Topic)
            .join(Topic, Topic.id == UserTopic.topic_id)
            .filter(UserTopic.user_id == user_id)
            .order_by(UserTopic.purchased_date.desc(), UserTopic.id.desc())
            .all()
        )

    @staticmethod
    def delete_for_user(session: Session, user_id: int) -> int:
        """사용자 이용권 전체 삭제"""
        return (
            session.query(UserTopic)
            .filter(UserTopic.user_id == user_id)
            .delete(synchronize_session=False)
        )


class PreferenceRepository:
    """학습 선호 저장소"""

    @staticmethod
    def get(session: Session, user_id: int) -> Optional[UserPreference]:
        """선호 설정 조회"""
        return session.query(UserPreference).filter(UserPreference.user_id == user_id).first()

    @staticmethod
    def upsert(session: Session, user_id: int, values: dict, now: datetime) -> UserPreference:
        """사용자당 1건 생성 또는 전체 필드 갱신"""
        preference = PreferenceRepository.get(session, user_id)

        fields = ("role", "industry", "language", "preferred_mode", "frequency")
        if preference:
            for name in fields:
                setattr(preference, name, values.get(name) or None)
            preference.updated_at = now
        else:
            preference = UserPreference(
                user_id=user_id,
                created_at=now,
                updated_at=now,
                **{name: values.get(name) or None for name in fields}
            )
            session.add(preference)

        session.flush()
        return preference


class DeliveryRepository:
    """콘텐츠 발송 커서 저장소"""

    @staticmethod
    def create(session: Session, user_id: int, topic_id: int, day_number: int, now: datetime) -> UserContentDelivery:
        """미발송 행 생성"""
        delivery = UserContentDelivery(
            user_id=user_id,
            topic_id=topic_id,
            day_number=day_number,
            is_sent=False,
            attempts=0,
            dead_lettered=False,
            created_at=now,
        )
        session.add(delivery)
        session.flush()
        return delivery

    @staticmethod
    def has_pending(session: Session, user_id: int, topic_id: int) -> bool:
        """미발송 행 존재 여부"""
        return (
            session.query(UserContentDelivery.id)
            .filter(
                and_(
                    UserContentDelivery.user_id == user_id,
                    UserContentDelivery.topic_id == topic_id,
                    UserContentDelivery.is_sent == False
                )
            )
            .first()
        ) is not None

    @staticmethod
    def get_for_update(session: Session, delivery_id: int) -> Optional[UserContentDelivery]:
        """발송 행 잠금 조회"""
        return (
            session.query(UserContentDelivery)
            .filter(UserContentDelivery.id == delivery_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def get_pending(session: Session) -> list[PendingDelivery]:
        """발송 대기 목록 (오래된 순)"""
        rows = (
            session.query(UserContentDelivery, User, Content)
            .join(User, User.id == UserContentDelivery.user_id)
            .join(
                Content,
                and_(
                    Content.topic_id == UserContentDelivery.topic_id,
                    Content.day_number == UserContentDelivery.day_number
                )
            )
            .filter(
                and_(
                    UserContentDelivery.is_sent == False,
                    UserContentDelivery.dead_lettered == False
                )
            )
            .order_by(UserContentDelivery.created_at.asc(), UserContentDelivery.id.asc())
            .all()
        )

        return [
            PendingDelivery(
                delivery_id=delivery.id,
                user_id=user.id,
                topic_id=delivery.topic_id,
                day_number=delivery.day_number,
                name=user.name,
                email=user.email,
                phone=user.phone,
                content_id=content.id,
                title=content.title,
                description=content.description,
                content_text=content.content_text,
                created_at=delivery.created_at,
            )
            for delivery, user, content in rows
        ]

    @staticmethod
    def mark_sent(session: Session, delivery: UserContentDelivery, now: datetime) -> None:
        """발송 완료 처리"""
        delivery.is_sent = True
        delivery.delivered_on = now
        delivery.attempts = (delivery.attempts or 0) + 1
        delivery.last_attempt_at = now
        delivery.last_error = None
        session.flush()

    @staticmethod
    def record_failure(
        session: Session,
        delivery: UserContentDelivery,
        error: str,
        now: datetime,
        max_attempts: int = 0
    ) -> bool:
        """발송 실패 기록, 재시도 한도 도달 시 True"""
        delivery.attempts = (delivery.attempts or 0) + 1
        delivery.last_error = error
        delivery.last_attempt_at = now
        if max_attempts and delivery.attempts >= max_attempts:
            delivery.dead_lettered = True
        session.flush()
        return delivery.dead_lettered

    @staticmethod
    def count_pending(session: Session, user_id: int = None) -> int:
        """발송 대기 행 수 (재시도 중단 행 제외)"""
        query = session.query(func.count(UserContentDelivery.id)).filter(
            and_(
                UserContentDelivery.is_sent == False,
                UserContentDelivery.dead_lettered == False
            )
        )
        if user_id is not None:
            query = query.filter(UserContentDelivery.user_id == user_id)
        return query.scalar() or 0

    @staticmethod
    def count_sent_between(session: Session, start: datetime, end: datetime, user_id: int = None) -> int:
        """기간 내 발송 완료 수"""
        query = session.query(func.count(UserContentDelivery.id)).filter(
            and_(
                UserContentDelivery.is_sent == True,
                UserContentDelivery.delivered_on >= start,
                UserContentDelivery.delivered_on < end
            )
        )
        if user_id is not None:
            query = query.filter(UserContentDelivery.user_id == user_id)
        return query.scalar() or 0

    @staticmethod
    def recent_sent(session: Session, limit: int = 10, user_id: int = None) -> list[tuple]:
        """최근 발송 내역 (user_id, email, title, delivered_on, day_number)"""
        query = (
            session.query(
                UserContentDelivery.user_id,
                User.email,
                Content.title,
                UserContentDelivery.delivered_on,
                UserContentDelivery.day_number,
            )
            .join(User, User.id == UserContentDelivery.user_id)
            .join(
                Content,
                and_(
                    Content.topic_id == UserContentDelivery.topic_id,
                    Content.day_number == UserContentDelivery.day_number
                )
            )
            .filter(UserContentDelivery.is_sent == True)
        )
        if user_id is not None:
            query = query.filter(UserContentDelivery.user_id == user_id)
        return (
            query.order_by(UserContentDelivery.delivered_on.desc(), UserContentDelivery.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_for_user_topic(session: Session, user_id: int, topic_id: int) -> list[UserContentDelivery]:
        """사용자-토픽 발송 진도 (일차 순)"""
        return (
            session.query(UserContentDelivery)
            .filter(
                and_(
                    UserContentDelivery.user_id == user_id,
                    UserContentDelivery.topic_id == topic_id
                )
            )
            .order_by(UserContentDelivery.day_number.asc())
            .all()
        )


class SchedulerLogRepository:
    """발송 감사 로그 저장소"""

    @staticmethod
    def create(session: Session, user_id: int, content_id: int, action: str, now: datetime) -> SchedulerLog:
        """감사 로그 기록"""
        log = SchedulerLog(user_id=user_id, content_id=content_id, action=action, created_at=now)
        session.add(log)
        session.flush()
        return log
