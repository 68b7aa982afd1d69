"""Subscription Routes - trial activation, entitlements, preferences and plans"""

import logging

from fastapi import APIRouter, Depends

from ..dependencies import Services, get_services
from ..schemas import (
    ActivateTrialRequest,
    PurchaseTopicRequest,
    UpdateTopicsRequest,
    PreferenceRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["subscriptions"])


@router.post("/activate-trial")
def activate_trial(body: ActivateTrialRequest, services: Services = Depends(get_services)):
    preferences = body.preferences.model_dump() if body.preferences else None
    activation = services.activator.activate_trial(body.user_id, body.plan_name, preferences)
    return {
        "success": True,
        "message": "Free trial activated",
        "payment_id": activation.payment_id,
        "subscription_id": activation.subscription_id,
        "trial_end_date": activation.trial_end_date,
        "seeded_topic_ids": activation.seeded_topic_ids,
        "skipped_topics": activation.skipped_topics,
    }


@router.get("/check-subscription")
def check_subscription(user_id: int, services: Services = Depends(get_services)):
    state = services.entitlements.check_subscription(user_id)
    return {"success": True, "subscription": state}


@router.post("/purchase-topic")
def purchase_topic(body: PurchaseTopicRequest, services: Services = Depends(get_services)):
    purchase = services.entitlements.purchase_topic(
        user_id=body.user_id,
        topic_id=body.topic_id,
        plan_name=body.plan_name,
        amount=body.amount,
        payment_status=body.payment_status,
        duration_days=body.duration_days,
    )
    return {"success": True, "message": "Topic purchased successfully", "purchase": purchase}


@router.get("/purchase-topic")
def list_purchases(user_id: int, services: Services = Depends(get_services)):
    topics = services.entitlements.list_user_topics(user_id)
    return {"success": True, "purchases": topics}


@router.post("/update-topics")
def update_topics(body: UpdateTopicsRequest, services: Services = Depends(get_services)):
    topic_ids = services.entitlements.replace_user_topics(body.user_id, body.topic_ids)
    return {"success": True, "message": "Topics updated successfully", "topic_ids": topic_ids}


@router.post("/user-preference")
def save_preference(body: PreferenceRequest, services: Services = Depends(get_services)):
    preference = services.entitlements.save_preferences(
        user_id=body.user_id,
        role=body.role,
        industry=body.industry,
        language=body.language,
        preferred_mode=body.preferred_mode,
        frequency=body.frequency,
    )
    return {"success": True, "preference": preference}


@router.get("/get-user-topics")
def get_user_topics(user_id: int, services: Services = Depends(get_services)):
    topics = services.entitlements.list_user_topics(user_id)
    return {"success": True, "topics": topics}


@router.get("/get-payment-history")
def get_payment_history(user_id: int, services: Services = Depends(get_services)):
    payments = services.entitlements.payment_history(user_id)
    return {"success": True, "payments": payments}


@router.get("/getplans")
def get_plans(services: Services = Depends(get_services)):
    return {"success": True, "plans": services.entitlements.list_plans()}
