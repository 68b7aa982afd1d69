"""
구독 및 이용권 모듈
"""

from .topics import TopicSelection, parse_topic_ids
from .activator import TrialActivator, TrialActivation
from .entitlements import (
    EntitlementService,
    SubscriptionState,
    TopicPurchase,
    TopicEntitlement,
    PaymentRecord,
    PlanInfo,
    PreferenceInfo,
)

__all__ = [
    "TopicSelection",
    "parse_topic_ids",
    "TrialActivator",
    "TrialActivation",
    "EntitlementService",
    "SubscriptionState",
    "TopicPurchase",
    "TopicEntitlement",
    "PaymentRecord",
    "PlanInfo",
    "PreferenceInfo",
]
