from __future__ import annotations

import logging
from typing import Any, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from utils.brevo_email import EmailDeliveryError
from utils.otp_service import OTP_LENGTH, OtpService
from utils.validation import normalize_email, validate_email


router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def get_otp_service(request: Request) -> OtpService:
    return request.app.state.otp_service


def get_mailer(request: Request) -> Callable[[str, str], None]:
    return request.app.state.mailer


def _error(status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})


class SendOtpIn(BaseModel):
    email: Any = None


class VerifyOtpIn(BaseModel):
    email: Any = None
    otp: Any = None


@router.post("/send-otp")
def send_otp(
    payload: SendOtpIn,
    service: OtpService = Depends(get_otp_service),
    mailer: Callable[[str, str], None] = Depends(get_mailer),
):
    if not payload.email or not isinstance(payload.email, str):
        return _error(400, "Email is required")
    ok, msg = validate_email(payload.email)
    if not ok:
        return _error(400, msg)
    email = normalize_email(payload.email)

    try:
        code, status = service.send_otp_if_idle(email)
        if code is None:
            wait = status.time_remaining_seconds
            return _error(
                429,
                f"Please wait {wait} seconds before requesting a new OTP",
                timeRemainingSeconds=wait,
            )

        # Sent outside the identity lock. The challenge stays valid even if delivery fails.
        mailer(email, code)
    except EmailDeliveryError:
        logger.exception("OTP email delivery failed for %s", email)
        return _error(500, "Email service is currently unavailable. Please try again later.")
    except Exception as e:
        logger.exception("Error in send-otp endpoint")
        return _error(500, str(e) or "Failed to send OTP")

    return {"message": "OTP sent successfully to your email"}


@router.post("/verify-otp")
def verify_otp(payload: VerifyOtpIn, service: OtpService = Depends(get_otp_service)):
    if not payload.email or not isinstance(payload.email, str):
        return _error(400, "Email is required")
    ok, msg = validate_email(payload.email)
    if not ok:
        return _error(400, msg)
    if not isinstance(payload.otp, str) or len(payload.otp) != OTP_LENGTH:
        return _error(400, f"OTP must be a {OTP_LENGTH}-digit code")
    email = normalize_email(payload.email)

    try:
        result = service.verify_otp(email, payload.otp)
        if not result.valid:
            status = service.get_otp_status(email)
            return JSONResponse(
                status_code=400,
                content={
                    "valid": False,
                    "error": result.message,
                    "attemptsRemaining": status.attempts_remaining if status.exists else 0,
                },
            )
    except Exception as e:
        logger.exception("Error in verify-otp endpoint")
        return _error(500, str(e) or "Failed to verify OTP")

    return {"valid": True, "message": result.message}
