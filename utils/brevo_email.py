from __future__ import annotations

import logging
import os
from typing import Optional

import requests


logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"


class EmailDeliveryError(RuntimeError):
    pass


def _email_mode() -> str:
    # Console output is opt-in only; a missing Brevo config must fail delivery.
    return os.getenv("EMAIL_MODE", "brevo").strip().lower() or "brevo"


def send_email(*, to_email: str, subject: str, html: str, text: Optional[str] = None) -> None:
    """
    Sends email using Brevo Transactional Email API.
    Requires:
      - BREVO_API_KEY
      - BREVO_FROM (email) OR EMAIL_FROM/SMTP_FROM
    With EMAIL_MODE=console the message is logged instead of sent.
    """
    if _email_mode() == "console":
        logger.info("[DEV EMAIL] to=%s subject=%r\n%s", to_email, subject, text or html)
        return

    api_key = os.getenv("BREVO_API_KEY")
    if not api_key:
        raise EmailDeliveryError("BREVO_API_KEY is not set")

    from_email = (
        os.getenv("BREVO_FROM")
        or os.getenv("EMAIL_FROM")
        or os.getenv("SMTP_FROM")
    )
    if not from_email:
        raise EmailDeliveryError("BREVO_FROM (or EMAIL_FROM/SMTP_FROM) is not set")

    payload = {
        "sender": {"email": from_email, "name": os.getenv("BREVO_SENDER_NAME", "Forward Africa")},
        "to": [{"email": to_email}],
        "subject": subject,
        "htmlContent": html,
    }
    if text:
        payload["textContent"] = text

    try:
        resp = requests.post(
            BREVO_URL,
            headers={
                "accept": "application/json",
                "api-key": api_key,
                "content-type": "application/json",
            },
            json=payload,
            timeout=15,
        )
    except requests.RequestException as e:
        raise EmailDeliveryError(f"Brevo request failed: {e}") from e

    if resp.status_code >= 300:
        raise EmailDeliveryError(f"Brevo send failed ({resp.status_code}): {resp.text}")
    logger.info("Email sent to %s via Brevo", to_email)
