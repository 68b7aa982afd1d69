"""
데이터베이스 모듈
"""

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
    UserType,
)
from .repository import (
    Database,
    init_db,
    get_db,
    get_session,
    PendingDelivery,
    UserRepository,
    OtpRepository,
    PlanRepository,
    TopicRepository,
    ContentRepository,
    SubscriptionRepository,
    PaymentRepository,
    UserTopicRepository,
    PreferenceRepository,
    DeliveryRepository,
    SchedulerLogRepository,
)

__all__ = [
    "Base",
    "User",
    "OtpCode",
    "Plan",
    "Topic",
    "Content",
    "Subscription",
    "SubscriptionHistory",
    "SubscriptionStatus",
    "HistoryAction",
    "Payment",
    "UserTopic",
    "UserPreference",
    "UserContentDelivery",
    "SchedulerLog",
    "UserType",
    "Database",
    "init_db",
    "get_db",
    "get_session",
    "PendingDelivery",
    "UserRepository",
    "OtpRepository",
    "PlanRepository",
    "TopicRepository",
    "ContentRepository",
    "SubscriptionRepository",
    "PaymentRepository",
    "UserTopicRepository",
    "PreferenceRepository",
    "DeliveryRepository",
    "SchedulerLogRepository",
]
