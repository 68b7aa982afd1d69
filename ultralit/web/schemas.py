"""Request models for the JSON API"""

from typing import Any, List, Optional

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    name: str = Field(..., max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=30)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    user_type: int = 1


class SendOtpRequest(BaseModel):
    email: EmailStr


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str


class PreferencesPayload(BaseModel):
    """Learning preferences; topics are free-form so malformed entries can be reported back"""
    role: Optional[str] = None
    industry: Optional[str] = None
    language: Optional[str] = None
    preferred_mode: Optional[str] = None
    frequency: Optional[str] = None
    topics: Optional[List[Any]] = None


class ActivateTrialRequest(BaseModel):
    user_id: Optional[int] = None
    plan_name: str
    preferences: Optional[PreferencesPayload] = None


class PurchaseTopicRequest(BaseModel):
    user_id: int
    topic_id: int
    plan_name: Optional[str] = None
    amount: float = 0.0
    payment_status: str = "completed"
    duration_days: Optional[int] = Field(None, gt=0)


class UpdateTopicsRequest(BaseModel):
    user_id: int
    topic_ids: List[Any]


class PreferenceRequest(BaseModel):
    user_id: int
    role: Optional[str] = None
    industry: Optional[str] = None
    language: Optional[str] = None
    preferred_mode: Optional[str] = None
    frequency: Optional[str] = None


class CreateOrderRequest(BaseModel):
    amount: float
    currency: Optional[str] = None
    receipt: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    user_id: Optional[int] = None
    amount: Any = None
    currency: Optional[str] = None
    topic_id: Optional[int] = None
    subscription_id: Optional[int] = None
    plan_name: Optional[str] = None
