"""
이메일 발송 모듈
"""

from .smtp_sender import SmtpSender, SendResult
from .dispatchers import (
    Contact,
    ContentPayload,
    CodeNotifier,
    ContentDispatcher,
    EmailCodeNotifier,
    EmailContentDispatcher,
)

__all__ = [
    "SmtpSender",
    "SendResult",
    "Contact",
    "ContentPayload",
    "CodeNotifier",
    "ContentDispatcher",
    "EmailCodeNotifier",
    "EmailContentDispatcher",
]
