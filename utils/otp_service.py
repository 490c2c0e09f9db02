from __future__ import annotations

import hmac
import logging
import math
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple


logger = logging.getLogger(__name__)

OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
OTP_EXPIRY_SECONDS = OTP_EXPIRY_MINUTES * 60
MAX_ATTEMPTS = 5

_OTP_MIN = 10 ** (OTP_LENGTH - 1)
_OTP_MAX = 10 ** OTP_LENGTH - 1


@dataclass
class Challenge:
    identity: str
    code: str
    issued_at: float
    expires_at: float
    attempts: int = 0


@dataclass
class VerifyResult:
    valid: bool
    message: str


@dataclass
class OtpStatus:
    exists: bool
    attempts_remaining: Optional[int] = None
    time_remaining_seconds: Optional[int] = None
    message: Optional[str] = None


def generate_otp() -> str:
    return f"{_OTP_MIN + secrets.randbelow(_OTP_MAX - _OTP_MIN + 1)}"


class OtpService:
    """
    Issues and verifies email one-time passcodes.

    send_otp() is unconditional; send_otp_if_idle() adds the resend cooldown
    under the same identity lock. Expiry is checked lazily on read; nothing
    runs in the background unless sweep_expired() is scheduled explicitly.
    """

    def __init__(
        self,
        store,
        *,
        clock: Callable[[], float] = time.time,
        generator: Callable[[], str] = generate_otp,
    ) -> None:
        self.store = store
        self._clock = clock
        self._generate = generator

    def send_otp(self, identity: str) -> str:
        """Store a fresh challenge for 'identity' and return its plaintext code."""
        with self.store.lock(identity):
            return self._issue(identity)

    def send_otp_if_idle(self, identity: str) -> Tuple[Optional[str], OtpStatus]:
        """
        Issue a code only if no live challenge is outstanding.

        Returns (code, status). code is None when the cooldown applies; status
        then describes the outstanding challenge.
        """
        with self.store.lock(identity):
            status = self._status(identity)
            if status.exists and status.time_remaining_seconds > 0:
                return None, status
            return self._issue(identity), status

    def verify_otp(self, identity: str, candidate: str) -> VerifyResult:
        with self.store.lock(identity):
            challenge = self.store.get(identity)
            if challenge is None:
                return VerifyResult(False, "No OTP found for this email. Please request a new one.")

            if self._clock() > challenge.expires_at:
                self.store.delete(identity)
                return VerifyResult(False, "OTP has expired. Please request a new one.")

            if challenge.attempts >= MAX_ATTEMPTS:
                self.store.delete(identity)
                logger.warning("OTP attempts exhausted for %s", identity)
                return VerifyResult(False, "Maximum OTP attempts exceeded. Please request a new one.")

            # Counted before comparing, success included.
            challenge.attempts += 1

            if not _codes_equal(challenge.code, candidate or ""):
                self.store.set(identity, challenge)
                remaining = MAX_ATTEMPTS - challenge.attempts
                return VerifyResult(False, f"Incorrect OTP. You have {remaining} attempts remaining.")

            self.store.delete(identity)
        logger.info("OTP verified for %s", identity)
        return VerifyResult(True, "Email verified successfully.")

    def get_otp_status(self, identity: str) -> OtpStatus:
        with self.store.lock(identity):
            return self._status(identity)

    def clear_otp(self, identity: str) -> None:
        with self.store.lock(identity):
            self.store.delete(identity)

    def sweep_expired(self) -> int:
        """Delete every expired challenge. Returns the number removed."""
        removed = 0
        for identity, _ in self.store.items():
            with self.store.lock(identity):
                current = self.store.get(identity)
                if current is not None and self._clock() > current.expires_at:
                    self.store.delete(identity)
                    removed += 1
        if removed:
            logger.info("Swept %d expired OTP challenge(s)", removed)
        return removed

    # Callers must hold store.lock(identity); Redis locks are not reentrant.

    def _issue(self, identity: str) -> str:
        code = self._generate()
        now = self._clock()
        # Replaces any outstanding challenge, attempts included.
        self.store.set(
            identity,
            Challenge(identity=identity, code=code, issued_at=now, expires_at=now + OTP_EXPIRY_SECONDS),
        )
        logger.info("OTP issued for %s (expires in %d min)", identity, OTP_EXPIRY_MINUTES)
        return code

    def _status(self, identity: str) -> OtpStatus:
        challenge = self.store.get(identity)
        if challenge is None:
            return OtpStatus(exists=False, message="No OTP request found for this email.")

        now = self._clock()
        if now > challenge.expires_at:
            self.store.delete(identity)
            return OtpStatus(exists=False, message="OTP has expired.")

        return OtpStatus(
            exists=True,
            attempts_remaining=MAX_ATTEMPTS - challenge.attempts,
            time_remaining_seconds=math.ceil(challenge.expires_at - now),
        )


def _codes_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
