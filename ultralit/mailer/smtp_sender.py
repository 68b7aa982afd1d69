"""
SMTP 이메일 발송 모듈
"""

import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.header import Header
from dataclasses import dataclass
from typing import Optional

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    """발송 결과"""
    recipient: str
    success: bool
    error_message: Optional[str] = None


class SmtpSender:
    """SMTP 이메일 발송기"""

    def __init__(
        self,
        host: str = None,
        port: int = None,
        username: str = None,
        password: str = None,
        sender_email: str = None,
        timeout: float = None
    ):
        """
        Args:
            host: SMTP 서버 주소
            port: SMTP 포트 (587 STARTTLS)
            username: 로그인 계정
            password: 앱 비밀번호
            sender_email: 발신 주소 (기본값은 로그인 계정)
            timeout: 소켓 타임아웃(초)
        """
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username or settings.smtp_user
        self.password = password or settings.smtp_password
        self.sender_email = sender_email or settings.smtp_from or self.username
        self.timeout = settings.smtp_timeout if timeout is None else timeout

        if not self.username or not self.password:
            logger.warning(
                "SMTP 설정이 완료되지 않았습니다. "
                ".env 파일에 SMTP_USER와 SMTP_PASSWORD를 설정하세요."
            )

    @property
    def is_configured(self) -> bool:
        """SMTP 설정 완료 여부"""
        return bool(self.username and self.password)

    def send(
        self,
        recipient: str,
        subject: str,
        html_content: str,
        sender_name: str = "Ultralit"
    ) -> SendResult:
        """
        이메일 발송 (동기)

        Args:
            recipient: 수신자 이메일
            subject: 제목
            html_content: HTML 본문
            sender_name: 발신자 이름

        Returns:
            SendResult 객체
        """
        if not self.is_configured:
            return SendResult(
                recipient=recipient,
                success=False,
                error_message="SMTP 설정이 완료되지 않았습니다."
            )

        try:
            # 이메일 메시지 구성
            message = MIMEMultipart("alternative")
            message["Subject"] = Header(subject, "utf-8")
            message["From"] = f"{sender_name} <{self.sender_email}>"
            message["To"] = recipient

            # HTML 본문 추가
            html_part = MIMEText(html_content, "html", "utf-8")
            message.attach(html_part)

            # SMTP 연결 및 발송
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.username, self.password)
                server.sendmail(
                    self.sender_email,
                    recipient,
                    message.as_string()
                )

            logger.info(f"이메일 발송 성공: {recipient}")
            return SendResult(recipient=recipient, success=True)

        except smtplib.SMTPAuthenticationError:
            error_msg = "SMTP 인증 실패. 앱 비밀번호를 확인하세요."
            logger.error(f"이메일 발송 실패: {error_msg}")
            return SendResult(recipient=recipient, success=False, error_message=error_msg)

        except smtplib.SMTPRecipientsRefused:
            error_msg = f"수신자 거부: {recipient}"
            logger.error(f"이메일 발송 실패: {error_msg}")
            return SendResult(recipient=recipient, success=False, error_message=error_msg)

        except (smtplib.SMTPException, OSError) as e:
            error_msg = str(e) or e.__class__.__name__
            logger.error(f"이메일 발송 실패: {error_msg}")
            return SendResult(recipient=recipient, success=False, error_message=error_msg)
