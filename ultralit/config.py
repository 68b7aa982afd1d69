"""
Ultralit 설정 관리 모듈
"""

from pathlib import Path
from typing import Optional
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """애플리케이션 설정"""

    # 프로젝트 경로
    BASE_DIR: Path = Path(__file__).parent.parent

    # 실행 환경
    environment: str = Field(default="development")

    # 데이터베이스
    database_url: str = Field(default="sqlite:///./data/ultralit.db")

    # SMTP (OTP 코드 및 콘텐츠 발송)
    smtp_host: str = Field(default="smtp.gmail.com")
    smtp_port: int = Field(default=587)
    smtp_user: str = Field(default="")
    smtp_password: str = Field(default="")
    smtp_from: str = Field(default="")
    smtp_timeout: float = Field(default=20.0)

    # Razorpay 결제
    razorpay_key_id: str = Field(default="")
    razorpay_key_secret: str = Field(default="")
    razorpay_base_url: str = Field(default="https://api.razorpay.com/v1")
    default_currency: str = Field(default="INR")

    # OTP
    otp_expiry_minutes: int = Field(default=10)

    # 구독 / 체험판
    trial_plan_name: str = Field(default="Free Trial")
    trial_days: int = Field(default=7)
    subscription_days: int = Field(default=30)
    topic_access_days: int = Field(default=30)
    lifetime_duration_days: int = Field(default=9999)

    # 스케줄러
    schedule_hour: int = Field(default=8)
    schedule_minute: int = Field(default=0)
    dispatch_timeout_seconds: float = Field(default=30.0)
    delivery_max_attempts: int = Field(default=5)  # 0 = 무제한 재시도
    recent_deliveries_limit: int = Field(default=10)
    scheduler_token: Optional[str] = Field(default=None)

    # 알림
    alert_email: str = Field(default="")

    # 로깅
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """운영 환경 여부"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """설정 싱글톤 반환"""
    return Settings()


settings = get_settings()
