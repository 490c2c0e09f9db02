from __future__ import annotations

import os

from utils.brevo_email import send_email
from utils.otp_service import OTP_EXPIRY_MINUTES


OTP_SUBJECT = os.getenv("OTP_SUBJECT", "Email Verification")


def send_otp_email(email: str, code: str) -> None:
    """Deliver a verification code. Raises EmailDeliveryError on failure."""
    html = f"""
    <div style="font-family:Arial,sans-serif;max-width:500px;margin:0 auto">
      <h2>Email Verification</h2>
      <p>To complete your registration, please verify your email address using the code below:</p>
      <div style="font-size:36px;font-weight:700;letter-spacing:8px;font-family:'Courier New',monospace">{code}</div>
      <p style="color:#ef4444;font-weight:700">This code expires in {OTP_EXPIRY_MINUTES} minutes</p>
      <p>If you didn't request this verification code, you can safely ignore this email.</p>
    </div>
    """
    text = f"Your verification code is {code}. This code expires in {OTP_EXPIRY_MINUTES} minutes."
    send_email(to_email=email, subject=OTP_SUBJECT, html=html, text=text)
