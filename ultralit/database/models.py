"""
SQLAlchemy 데이터베이스 모델 정의
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class UserType(PyEnum):
    """사용자 유형"""
    INDIVIDUAL = 1
    CORPORATE = 2


class SubscriptionStatus(PyEnum):
    """구독 상태"""
    ACTIVE = "active"
    EXPIRED = "expired"
    REPLACED = "replaced"    # 새 구독으로 대체됨


class HistoryAction(PyEnum):
    """구독 이력 유형"""
    NEW_SUBSCRIPTION = "new_subscription"
    UPGRADE = "upgrade"
    EXPIRED = "expired"
    REPLACED = "replaced"


class User(Base):
    """가입 사용자"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(30))
    zip_code = Column(String(20))
    country = Column(String(100))
    user_type = Column(Integer, default=UserType.INDIVIDUAL.value)

    last_login = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)

    # 관계
    subscriptions = relationship("Subscription", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class OtpCode(Base):
    """로그인 OTP 코드 (이메일당 1건, 재요청 시 덮어씀)"""
    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    otp_code = Column(String(6), nullable=False)

    expires_at = Column(DateTime, nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<OtpCode(email='{self.email}', used={self.is_used})>"


class Plan(Base):
    """요금제 카탈로그 (읽기 전용)"""
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(100), unique=True, nullable=False)
    display_name = Column(String(200))
    description = Column(Text)
    amount = Column(Float, default=0.0)
    currency = Column(String(10), default="INR")
    duration_days = Column(Integer, default=30)
    max_topics = Column(Integer)

    # 기능 목록 (JSON 문자열)
    features = Column(Text)

    is_trial = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f"<Plan(name='{self.name}', amount={self.amount})>"


class Topic(Base):
    """학습 토픽"""
    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(200), nullable=False)
    description = Column(Text)
    topic_type = Column(String(50))

    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<Topic(id={self.id}, name='{self.name}')>"


class Content(Base):
    """토픽별 일차 콘텐츠 (topic_id, day_number 로 식별)"""
    __tablename__ = "content"

    id = Column(Integer, primary_key=True, autoincrement=True)

    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False)
    day_number = Column(Integer, nullable=False)

    title = Column(String(500), nullable=False)
    description = Column(Text)
    content_text = Column(Text)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        UniqueConstraint("topic_id", "day_number", name="uq_content_topic_day"),
    )

    def __repr__(self):
        return f"<Content(topic_id={self.topic_id}, day={self.day_number})>"


class Subscription(Base):
    """사용자 구독"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    plan_name = Column(String(100), nullable=False)

    status = Column(Enum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False)
    start_date = Column(DateTime)
    next_renewal_date = Column(DateTime)
    end_date = Column(DateTime)
    trial_end_date = Column(DateTime)

    amount = Column(Float, default=0.0)
    currency = Column(String(10), default="INR")

    is_active = Column(Boolean, default=True)
    auto_renewal = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # 관계
    user = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        Index("idx_subscription_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return f"<Subscription(user_id={self.user_id}, plan='{self.plan_name}', status='{self.status.value}')>"


class SubscriptionHistory(Base):
    """구독 변경 이력"""
    __tablename__ = "subscription_history"

    id = Column(Integer, primary_key=True, autoincrement=True)

    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    action = Column(Enum(HistoryAction), nullable=False)
    previous_plan = Column(String(100))
    new_plan = Column(String(100))
    amount = Column(Float, default=0.0)
    reason = Column(String(500))

    created_at = Column(DateTime, default=datetime.now)


class Payment(Base):
    """결제 원장 (추가 전용, subscription_id 만 사후 연결)"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    topic_id = Column(Integer, ForeignKey("topics.id"))
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"))

    # 결제사 식별자
    provider_payment_id = Column(String(100), unique=True)
    provider_order_id = Column(String(100))

    amount = Column(Float, default=0.0)
    currency = Column(String(10), default="INR")
    status = Column(String(30), nullable=False)
    payment_method = Column(String(50))
    payment_type = Column(String(50))  # subscription, topic_purchase

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index("idx_payment_user", "user_id"),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, user_id={self.user_id}, status='{self.status}')>"


class UserTopic(Base):
    """토픽 이용권 (사용자-토픽 쌍당 1건)"""
    __tablename__ = "user_topics"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False)

    plan_name = Column(String(100))
    payment_status = Column(String(30), default="completed")
    amount_paid = Column(Float, default=0.0)

    purchased_date = Column(DateTime, default=datetime.now)
    expires_at = Column(DateTime)  # NULL = 평생 이용

    # 관계
    topic = relationship("Topic")

    __table_args__ = (
        UniqueConstraint("user_id", "topic_id", name="uq_user_topic"),
    )

    def __repr__(self):
        return f"<UserTopic(user_id={self.user_id}, topic_id={self.topic_id})>"


class UserPreference(Base):
    """학습 선호 설정 (사용자당 1건)"""
    __tablename__ = "user_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    role = Column(String(100))
    industry = Column(String(100))
    language = Column(String(50))
    preferred_mode = Column(String(50))
    frequency = Column(String(50))

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class UserContentDelivery(Base):
    """콘텐츠 발송 커서 (사용자-토픽별 미발송 행은 최대 1건)"""
    __tablename__ = "user_content_delivery"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False)
    day_number = Column(Integer, nullable=False, default=1)

    # 발송 상태
    is_sent = Column(Boolean, default=False, nullable=False)
    delivered_on = Column(DateTime)

    # 재시도 정책
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    last_attempt_at = Column(DateTime)
    dead_lettered = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.now)

    # 인덱스
    __table_args__ = (
        Index("idx_delivery_pending", "is_sent", "created_at"),
        Index("idx_delivery_user_topic", "user_id", "topic_id"),
        Index(
            "uq_delivery_one_pending",
            "user_id",
            "topic_id",
            unique=True,
            sqlite_where=text("is_sent = 0"),
            postgresql_where=text("is_sent = false"),
        ),
    )

    def __repr__(self):
        return (
            f"<UserContentDelivery(user_id={self.user_id}, topic_id={self.topic_id}, "
            f"day={self.day_number}, sent={self.is_sent})>"
        )


class SchedulerLog(Base):
    """발송 감사 로그 (부가 기록)"""
    __tablename__ = "scheduler_log"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content_id = Column(Integer, ForeignKey("content.id"), nullable=False)
    action = Column(String(30), nullable=False)

    created_at = Column(DateTime, default=datetime.now)
