"""
사용자 가입
"""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import IntegrityError

from ..database import Database, UserRepository, UserType
from ..exceptions import ErrorCode, ValidationError, ConflictError
from .otp import UserProfile, validate_email

logger = logging.getLogger(__name__)


class Registrar:
    """이메일 기준 사용자 등록"""

    def __init__(self, db: Database, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock

    def register(
        self,
        name: str,
        email: str,
        phone: str = None,
        zip_code: str = None,
        country: str = None,
        user_type: int = UserType.INDIVIDUAL.value
    ) -> UserProfile:
        """
        사용자 생성

        Raises:
            ValidationError: 이름 2자 미만, 이메일 형식 오류, 알 수 없는 사용자 유형
            ConflictError: 이미 가입된 이메일 (already_registered)
        """
        name = (name or "").strip()
        if len(name) < 2:
            raise ValidationError("Name must be at least 2 characters", details={"field": "name"})

        email = validate_email(email)

        if user_type not in {t.value for t in UserType}:
            raise ValidationError("Unknown user type", details={"field": "user_type"})

        try:
            with self.db.session() as session:
                if UserRepository.get_by_email(session, email):
                    raise ConflictError("User already registered", ErrorCode.ALREADY_REGISTERED)

                user = UserRepository.create(
                    session,
                    name=name[:100],
                    email=email,
                    phone=phone or None,
                    zip_code=zip_code or None,
                    country=country or None,
                    user_type=user_type,
                )
                user.created_at = self.clock()
                session.flush()
                profile = UserProfile.from_user(user)
        except IntegrityError:
            # 동시 가입으로 unique 제약 위반
            raise ConflictError("User already registered", ErrorCode.ALREADY_REGISTERED)

        logger.info(f"사용자 등록: {email} (id={profile.id})")
        return profile
