"""
Ultralit Web Application
JSON API for login, subscriptions, payments and content delivery
"""

import logging
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..config import settings
from ..database import Database, init_db
from ..exceptions import ErrorCode, UltralitError
from ..mailer import CodeNotifier, ContentDispatcher, EmailCodeNotifier, EmailContentDispatcher
from ..notifier.alert import AlertNotifier, get_notifier
from ..payment import RazorpayClient
from .dependencies import build_services
from .routes import auth_router, subscriptions_router, payments_router, scheduler_router

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.ALREADY_USED: 400,
    ErrorCode.EXPIRED: 400,
    ErrorCode.MISMATCH: 400,
    ErrorCode.ALREADY_REGISTERED: 400,
    ErrorCode.INVALID_PLAN: 400,
    ErrorCode.DUPLICATE_TRIAL: 400,
    ErrorCode.ACTIVE_SUBSCRIPTION_EXISTS: 400,
    ErrorCode.ALREADY_PURCHASED: 400,
    ErrorCode.INVALID_SIGNATURE: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_TOPICS: 422,
    ErrorCode.GATEWAY_ERROR: 502,
    ErrorCode.NOTIFICATION_FAILED: 502,
    ErrorCode.PAYMENT_CONFIG_ERROR: 500,
    ErrorCode.INFRASTRUCTURE_ERROR: 500,
}


def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(UltralitError)
    async def ultralit_error_handler(request: Request, exc: UltralitError):
        """Map domain errors to status codes; the error code is always exposed"""
        status_code = STATUS_BY_CODE.get(exc.code, 500)
        content = exc.to_dict()
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code.value} - {exc.message}")
            if settings.is_production:
                content["details"] = {}
        return JSONResponse(status_code=status_code, content=jsonable_encoder(content))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies share the validation_error shape"""
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": ErrorCode.VALIDATION_ERROR.value,
                "message": "Invalid request",
                "details": {"errors": jsonable_encoder(exc.errors())},
            },
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": ErrorCode.INFRASTRUCTURE_ERROR.value,
                "message": "Internal server error" if settings.is_production else str(exc),
                "details": {},
            },
        )


def create_app(
    db: Database = None,
    code_notifier: CodeNotifier = None,
    content_dispatcher: ContentDispatcher = None,
    clock: Callable[[], datetime] = datetime.now,
    alert_notifier: AlertNotifier = None,
    gateway: RazorpayClient = None,
    payment_secret: str = None,
    scheduler_token: str = None
) -> FastAPI:
    """
    Build the API application

    Collaborators default to the SMTP-backed implementations and the database
    from settings; tests pass in-memory replacements.
    """
    app = FastAPI(
        title="Ultralit",
        description="마이크로러닝 구독 및 일일 콘텐츠 발송 서비스",
        version="1.0.0"
    )

    db = db or init_db(settings.database_url)
    app.state.services = build_services(
        db=db,
        code_notifier=code_notifier or EmailCodeNotifier(),
        content_dispatcher=content_dispatcher or EmailContentDispatcher(),
        clock=clock,
        alert_notifier=alert_notifier or get_notifier(),
        gateway=gateway,
        payment_secret=payment_secret,
        scheduler_token=scheduler_token if scheduler_token is not None else settings.scheduler_token,
    )

    _register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(subscriptions_router)
    app.include_router(payments_router)
    app.include_router(scheduler_router)

    @app.get("/api/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "ultralit", "timestamp": datetime.now().isoformat()}

    return app


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the web server"""
    import uvicorn
    uvicorn.run("ultralit.web.app:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    run_server()
