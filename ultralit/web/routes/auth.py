"""Auth Routes - registration and OTP login"""

import logging

from fastapi import APIRouter, Depends

from ..dependencies import Services, get_services
from ..schemas import RegisterRequest, SendOtpRequest, VerifyOtpRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/register")
def register(body: RegisterRequest, services: Services = Depends(get_services)):
    profile = services.registrar.register(
        name=body.name,
        email=body.email,
        phone=body.phone,
        zip_code=body.zip_code,
        country=body.country,
        user_type=body.user_type,
    )
    return {"success": True, "message": "User registered successfully", "user": profile}


@router.post("/send-otp")
def send_otp(body: SendOtpRequest, services: Services = Depends(get_services)):
    services.authenticator.request_code(body.email)
    return {"success": True, "message": "OTP sent to your email"}


@router.post("/verify-otp")
def verify_otp(body: VerifyOtpRequest, services: Services = Depends(get_services)):
    profile = services.authenticator.verify_code(body.email, body.otp)
    return {"success": True, "message": "Login successful", "user": profile}
