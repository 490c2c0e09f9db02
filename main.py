from __future__ import annotations

import logging
import os
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from routers.auth import router as auth_router
from utils.mailer import send_otp_email
from utils.otp_service import OtpService
from utils.otp_store import build_store


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

OTP_SWEEP_MINUTES = int(os.getenv("OTP_SWEEP_MINUTES", "0"))


def create_app(
    service: Optional[OtpService] = None,
    mailer: Optional[Callable[[str, str], None]] = None,
) -> FastAPI:
    app = FastAPI(title="OTP Verification Backend")

    # One store and service per process.
    app.state.otp_service = service or OtpService(build_store())
    app.state.mailer = mailer or send_otp_email

    app.include_router(auth_router, prefix="/api")

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.on_event("startup")
    def _start_scheduler():
        if OTP_SWEEP_MINUTES <= 0:
            return
        sched = BackgroundScheduler(timezone=os.getenv("TZ", "UTC"))
        sched.add_job(
            app.state.otp_service.sweep_expired,
            "interval",
            minutes=OTP_SWEEP_MINUTES,
            id="sweep_expired_otps",
            replace_existing=True,
        )
        sched.start()
        app.state._scheduler = sched
        logger.info("OTP sweep scheduled every %d min", OTP_SWEEP_MINUTES)

    @app.on_event("shutdown")
    def _stop_scheduler():
        sched = getattr(app.state, "_scheduler", None)
        if sched:
            sched.shutdown(wait=False)

    @app.get("/")
    def root():
        return {"status": "Backend running"}

    return app


app = create_app()
