"""Scheduler Routes - on-demand delivery cycle, statistics and topic progress"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from ...exceptions import UnauthorizedError
from ..dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["scheduler"])


@router.post("/scheduler")
def run_scheduler(
    services: Services = Depends(get_services),
    x_scheduler_token: Optional[str] = Header(None)
):
    if services.scheduler_token:
        supplied = (x_scheduler_token or "").encode()
        if not hmac.compare_digest(supplied, services.scheduler_token.encode()):
            logging.getLogger("security").warning("Rejected scheduler trigger with bad token")
            raise UnauthorizedError("Invalid scheduler token")

    result = services.scheduler.run_delivery_cycle()
    return {
        "success": True,
        "message": f"Processed {result.total} deliveries",
        "total": result.total,
        "sent": result.sent,
        "failed": result.failed,
        "failures": result.failures,
        "advisory_warnings": result.advisory_warnings,
        "dead_lettered": result.dead_lettered,
    }


@router.get("/scheduler")
def scheduler_stats(
    user_id: Optional[int] = None,
    limit: Optional[int] = None,
    services: Services = Depends(get_services)
):
    stats = services.scheduler.get_scheduler_stats(user_id=user_id, limit=limit)
    return {"success": True, "stats": stats}


@router.get("/topic-content")
def topic_content(user_id: int, topic_id: int, services: Services = Depends(get_services)):
    progress = services.scheduler.topic_progress(user_id, topic_id)
    return {
        "success": True,
        "progress": progress,
        "completed": progress.completed,
    }
