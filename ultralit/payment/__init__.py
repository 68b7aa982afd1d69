"""
결제 모듈
"""

from .verifier import PaymentVerifier, PaymentVerification, compute_signature
from .razorpay_client import RazorpayClient, OrderResult

__all__ = [
    "PaymentVerifier",
    "PaymentVerification",
    "compute_signature",
    "RazorpayClient",
    "OrderResult",
]
