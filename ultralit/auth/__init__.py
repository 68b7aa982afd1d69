"""
사용자 인증 모듈
"""

from .otp import OtpAuthenticator, UserProfile, validate_email
from .registration import Registrar

__all__ = [
    "OtpAuthenticator",
    "UserProfile",
    "Registrar",
    "validate_email",
]
