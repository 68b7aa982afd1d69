"""
운영 알림 모듈
"""

from .alert import (
    AlertMessage,
    AlertNotifier,
    EmailAlertNotifier,
    ConsoleAlertNotifier,
    get_notifier,
    build_dead_letter_alert,
    build_cycle_summary_alert,
)

__all__ = [
    "AlertMessage",
    "AlertNotifier",
    "EmailAlertNotifier",
    "ConsoleAlertNotifier",
    "get_notifier",
    "build_dead_letter_alert",
    "build_cycle_summary_alert",
]
