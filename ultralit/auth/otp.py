"""
OTP 인증 - 로그인 코드 발급 및 검증
"""

import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..config import settings
from ..database import Database, User, UserRepository, OtpRepository
from ..exceptions import (
    ErrorCode,
    ValidationError,
    NotFoundError,
    ConflictError,
    NotificationError,
)
from ..mailer import CodeNotifier, Contact

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
CODE_LENGTH = 6


@dataclass
class UserProfile:
    """로그인 성공 시 반환되는 사용자 정보"""
    id: int
    name: str
    email: str
    phone: Optional[str]
    zip_code: Optional[str]
    country: Optional[str]
    user_type: int
    last_login: Optional[datetime]

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            zip_code=user.zip_code,
            country=user.country,
            user_type=user.user_type,
            last_login=user.last_login,
        )


def validate_email(email: str) -> str:
    """이메일 형식 검증 후 정리된 값 (소문자) 반환"""
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email address", details={"field": "email"})
    return email


class OtpAuthenticator:
    """이메일 OTP 로그인

    코드 상태: 발급 -> (사용 | 만료 | 재발급으로 대체)
    """

    def __init__(
        self,
        db: Database,
        notifier: CodeNotifier,
        clock: Callable[[], datetime] = datetime.now,
        expiry_minutes: int = None
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.expiry_minutes = settings.otp_expiry_minutes if expiry_minutes is None else expiry_minutes

    @staticmethod
    def generate_code() -> str:
        """6자리 숫자 코드 생성 (100000 ~ 999999 균등 분포)"""
        return str(secrets.randbelow(900000) + 100000)

    def request_code(self, email: str) -> None:
        """
        로그인 코드 발급 및 전달

        같은 이메일의 이전 코드는 즉시 무효화된다.

        Raises:
            NotFoundError: 해당 이메일의 사용자가 없음
            NotificationError: 코드 전달 실패
        """
        email = validate_email(email)
        now = self.clock()
        code = self.generate_code()
        expires_at = now + timedelta(minutes=self.expiry_minutes)

        with self.db.session() as session:
            user = UserRepository.get_by_email(session, email)
            if not user:
                raise NotFoundError("No account found with this email address")

            OtpRepository.upsert(session, user.id, email, code, expires_at, now)
            contact = Contact(user_id=user.id, name=user.name, email=user.email, phone=user.phone)

        result = self.notifier.send_code(contact, code, self.expiry_minutes)
        if not result.success:
            logger.error(f"OTP 전달 실패: {email} - {result.error_message}")
            raise NotificationError("Failed to send OTP", details={"reason": result.error_message})

        logger.info(f"OTP 발급: {email} (만료 {expires_at:%H:%M})")

    def verify_code(self, email: str, code: str) -> UserProfile:
        """
        로그인 코드 검증

        검증 순서: 미발급 -> 사용됨 -> 만료 -> 불일치 -> 성공.
        만료된 코드는 사용 처리되어 같은 코드로 다시 시도할 수 없다.

        Returns:
            UserProfile

        Raises:
            ValidationError, NotFoundError, ConflictError
        """
        email = validate_email(email)
        code = (code or "").strip()
        if len(code) != CODE_LENGTH or not code.isdigit():
            raise ValidationError("OTP must be a 6-digit code", details={"field": "otp"})

        now = self.clock()
        failure = None
        profile = None

        with self.db.session() as session:
            otp = OtpRepository.get_by_email(session, email)
            if not otp:
                raise NotFoundError("No OTP found for this email")

            if otp.is_used:
                raise ConflictError("OTP has already been used", ErrorCode.ALREADY_USED)

            if now > otp.expires_at:
                # 만료 표시는 커밋되어야 하므로 예외는 세션 종료 후 발생
                OtpRepository.mark_used(session, otp.id)
                failure = ConflictError("OTP has expired", ErrorCode.EXPIRED)
            elif not hmac.compare_digest(otp.otp_code.encode(), code.encode()):
                failure = ConflictError("Invalid OTP", ErrorCode.MISMATCH)
            elif not OtpRepository.mark_used(session, otp.id):
                # 동시 검증에서 먼저 사용됨
                raise ConflictError("OTP has already been used", ErrorCode.ALREADY_USED)
            else:
                UserRepository.touch_last_login(session, otp.user_id, now)
                user = UserRepository.get_by_id(session, otp.user_id)
                if not user:
                    raise NotFoundError("User not found")
                session.refresh(user)
                profile = UserProfile.from_user(user)

        if failure:
            security_logger.warning(f"OTP 검증 실패: {email} ({failure.code.value})")
            raise failure

        logger.info(f"OTP 로그인 성공: {email}")
        return profile
