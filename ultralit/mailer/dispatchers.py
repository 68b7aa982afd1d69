"""
발송 협력자 - OTP 코드 알림 및 일일 콘텐츠 발송
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..reporter.generator import ContentRenderer
from .smtp_sender import SmtpSender, SendResult

logger = logging.getLogger(__name__)


@dataclass
class Contact:
    """발송 대상 연락처"""
    user_id: int
    name: str
    email: str
    phone: Optional[str] = None


@dataclass
class ContentPayload:
    """발송할 콘텐츠"""
    content_id: int
    title: str
    body: str
    description: Optional[str] = None
    day_number: Optional[int] = None


class CodeNotifier(ABC):
    """OTP 코드 전달 채널"""

    @abstractmethod
    def send_code(self, contact: Contact, code: str, expiry_minutes: int) -> SendResult:
        """OTP 코드 전달"""
        pass


class ContentDispatcher(ABC):
    """콘텐츠 전달 채널 (이메일, WhatsApp 등)"""

    @abstractmethod
    def send(self, contact: Contact, payload: ContentPayload) -> SendResult:
        """콘텐츠 전달, 실패는 예외 대신 SendResult 로 반환"""
        pass


class EmailCodeNotifier(CodeNotifier):
    """이메일 OTP 전달"""

    SUBJECT = "Your Login OTP Code"

    def __init__(self, sender: SmtpSender = None, renderer: ContentRenderer = None):
        self.sender = sender or SmtpSender()
        self.renderer = renderer or ContentRenderer()

    def send_code(self, contact: Contact, code: str, expiry_minutes: int) -> SendResult:
        html_content = self.renderer.render_otp_email(contact.name, code, expiry_minutes)
        return self.sender.send(
            recipient=contact.email,
            subject=self.SUBJECT,
            html_content=html_content
        )


class EmailContentDispatcher(ContentDispatcher):
    """이메일 콘텐츠 전달"""

    def __init__(self, sender: SmtpSender = None, renderer: ContentRenderer = None):
        self.sender = sender or SmtpSender()
        self.renderer = renderer or ContentRenderer()

    def send(self, contact: Contact, payload: ContentPayload) -> SendResult:
        html_content = self.renderer.render_content_email(
            name=contact.name,
            title=payload.title,
            body=payload.body,
            description=payload.description,
            day_number=payload.day_number,
        )

        subject = f"[Ultralit] {payload.title}"
        if payload.day_number:
            subject = f"[Ultralit] Day {payload.day_number}: {payload.title}"

        return self.sender.send(
            recipient=contact.email,
            subject=subject,
            html_content=html_content
        )
