"""
Razorpay 주문 생성 클라이언트
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import httpx

from ..config import settings
from ..exceptions import ValidationError, ConfigurationError, GatewayError

logger = logging.getLogger(__name__)


@dataclass
class OrderResult:
    """결제사 주문 정보"""
    order_id: str
    amount: int  # 최소 화폐 단위 (paise)
    currency: str
    receipt: str
    status: str
    raw: dict = field(default_factory=dict)


class RazorpayClient:
    """Razorpay REST API 클라이언트"""

    def __init__(
        self,
        key_id: str = None,
        key_secret: str = None,
        base_url: str = None,
        clock: Callable[[], datetime] = datetime.now,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.key_id = key_id or settings.razorpay_key_id
        self.key_secret = key_secret or settings.razorpay_key_secret
        self.base_url = (base_url or settings.razorpay_base_url).rstrip("/")
        self.clock = clock

        if not self.key_id or not self.key_secret:
            raise ConfigurationError(
                "Razorpay 인증 정보가 필요합니다. "
                ".env 파일에 RAZORPAY_KEY_ID와 RAZORPAY_KEY_SECRET을 설정하세요."
            )

        self._client = httpx.Client(
            auth=(self.key_id, self.key_secret),
            timeout=30.0,
            transport=transport,
        )

    def create_order(self, amount: float, currency: str = None, receipt: str = None) -> OrderResult:
        """
        결제 주문 생성

        Args:
            amount: 결제 금액 (주 화폐 단위, 예: 루피)
            currency: 통화 코드
            receipt: 영수증 번호 (기본값 rcpt_<epoch-ms>)

        Returns:
            OrderResult

        Raises:
            ValidationError: 금액이 0 이하
            GatewayError: API 호출 실패
        """
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            raise ValidationError("Amount must be numeric", details={"field": "amount"})
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", details={"field": "amount"})

        currency = currency or settings.default_currency
        receipt = receipt or f"rcpt_{int(self.clock().timestamp() * 1000)}"

        body = {
            "amount": int(round(amount * 100)),
            "currency": currency,
            "receipt": receipt,
        }

        try:
            response = self._client.post(f"{self.base_url}/orders", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"주문 생성 실패: {e.response.status_code} - {e.response.text}")
            raise GatewayError(
                "Failed to create order",
                details={"status_code": e.response.status_code},
                original_error=e,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"주문 생성 중 오류 발생: {e}")
            raise GatewayError("Failed to create order", original_error=e)

        if not data.get("id"):
            raise GatewayError("Gateway response missing order id", details={"response": data})

        logger.info(f"주문 생성: {data.get('id')} ({body['amount']} {currency})")
        return OrderResult(
            order_id=data["id"],
            amount=data.get("amount", body["amount"]),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
            status=data.get("status", "created"),
            raw=data,
        )

    def close(self):
        """클라이언트 종료"""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
