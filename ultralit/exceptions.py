"""
Ultralit 예외 정의

모든 실패는 안정적인 ErrorCode 를 가지며, API 응답에서는 상세 메시지를 숨기더라도
코드는 항상 노출된다.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """호출자가 분기할 수 있는 실패 사유 코드"""
    VALIDATION_ERROR = "validation_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    ALREADY_REGISTERED = "already_registered"
    INVALID_PLAN = "invalid_plan"
    DUPLICATE_TRIAL = "duplicate_trial"
    ACTIVE_SUBSCRIPTION_EXISTS = "active_subscription_exists"
    ALREADY_PURCHASED = "already_purchased"
    INVALID_TOPICS = "invalid_topics"
    INVALID_SIGNATURE = "invalid_signature"
    PAYMENT_CONFIG_ERROR = "payment_config_error"
    GATEWAY_ERROR = "gateway_error"
    NOTIFICATION_FAILED = "notification_failed"
    INFRASTRUCTURE_ERROR = "infrastructure_error"


class UltralitError(Exception):
    """Ultralit 기본 예외"""

    default_code = ErrorCode.INFRASTRUCTURE_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        """API 응답용 딕셔너리 변환"""
        return {
            "success": False,
            "error": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(UltralitError):
    """입력값 검증 실패 (저장소 접근 전에 거부)"""
    default_code = ErrorCode.VALIDATION_ERROR


class UnauthorizedError(UltralitError):
    """호출 자격 증명 불일치 (스케줄러 토큰 등)"""
    default_code = ErrorCode.UNAUTHORIZED


class NotFoundError(UltralitError):
    """대상 레코드 없음"""
    default_code = ErrorCode.NOT_FOUND


class ConflictError(UltralitError):
    """현재 상태와 충돌 (중복 체험판, 사용된 OTP 등)"""

    def __init__(self, message: str, code: ErrorCode, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class EntitlementIntegrityError(UltralitError):
    """카탈로그에 없는 토픽 ID 참조"""
    default_code = ErrorCode.INVALID_TOPICS

    def __init__(self, message: str, invalid_ids: list):
        super().__init__(message, details={"invalid_ids": list(invalid_ids)})
        self.invalid_ids = list(invalid_ids)


class InvalidSignatureError(UltralitError):
    """결제 서명 불일치"""
    default_code = ErrorCode.INVALID_SIGNATURE


class ConfigurationError(UltralitError):
    """필수 설정 누락"""
    default_code = ErrorCode.PAYMENT_CONFIG_ERROR


class GatewayError(UltralitError):
    """외부 결제 게이트웨이 호출 실패"""
    default_code = ErrorCode.GATEWAY_ERROR


class NotificationError(UltralitError):
    """OTP 코드 전달 실패"""
    default_code = ErrorCode.NOTIFICATION_FAILED


class InfrastructureError(UltralitError):
    """저장소 장애 또는 트랜잭션 실패"""
    default_code = ErrorCode.INFRASTRUCTURE_ERROR
