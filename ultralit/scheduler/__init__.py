"""
콘텐츠 발송 스케줄러 모듈
"""

from .delivery import (
    DeliveryScheduler,
    DeliveryCycleResult,
    DeliveryFailure,
    SchedulerStats,
    RecentDelivery,
    TopicProgress,
    ContentProgress,
)

__all__ = [
    "DeliveryScheduler",
    "DeliveryCycleResult",
    "DeliveryFailure",
    "SchedulerStats",
    "RecentDelivery",
    "TopicProgress",
    "ContentProgress",
]
