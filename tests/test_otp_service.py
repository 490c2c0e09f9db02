from __future__ import annotations

import re
import threading
import time

from utils.otp_service import (
    MAX_ATTEMPTS,
    OTP_EXPIRY_SECONDS,
    OtpService,
    OtpStatus,
    VerifyResult,
    generate_otp,
)


def test_generate_otp_is_six_digits():
    for _ in range(200):
        code = generate_otp()
        assert re.fullmatch(r"\d{6}", code)
        assert 100000 <= int(code) <= 999999


def test_send_then_verify_is_one_time(service):
    code = service.send_otp("a@x.com")
    assert re.fullmatch(r"^\d{6}$", code)

    result = service.verify_otp("a@x.com", code)
    assert result.valid is True
    assert result.message == "Email verified successfully."

    again = service.verify_otp("a@x.com", code)
    assert again.valid is False
    assert again.message.startswith("No OTP found")


def test_wrong_code_reports_remaining_attempts(store, clock):
    service = OtpService(store, clock=clock, generator=lambda: "123456")
    code = service.send_otp("a@x.com")

    assert service.verify_otp("a@x.com", "000000") == VerifyResult(
        False, "Incorrect OTP. You have 4 attempts remaining."
    )
    assert service.verify_otp("a@x.com", code) == VerifyResult(True, "Email verified successfully.")


def test_attempts_exhausted_blocks_correct_code(store, clock):
    service = OtpService(store, clock=clock, generator=lambda: "123456")
    service.send_otp("a@x.com")

    for expected_left in range(MAX_ATTEMPTS - 1, -1, -1):
        result = service.verify_otp("a@x.com", "654321")
        assert result.valid is False
        assert result.message == f"Incorrect OTP. You have {expected_left} attempts remaining."

    result = service.verify_otp("a@x.com", "123456")
    assert result.valid is False
    assert result.message.startswith("Maximum OTP attempts exceeded")
    assert store.get("a@x.com") is None


def test_correct_code_on_last_attempt_succeeds(store, clock):
    service = OtpService(store, clock=clock, generator=lambda: "123456")
    service.send_otp("a@x.com")
    for _ in range(MAX_ATTEMPTS - 1):
        service.verify_otp("a@x.com", "000000")

    assert service.verify_otp("a@x.com", "123456").valid is True


def test_resend_invalidates_previous_code(store, clock):
    codes = iter(["111111", "222222"])
    service = OtpService(store, clock=clock, generator=lambda: next(codes))
    first = service.send_otp("a@x.com")
    service.verify_otp("a@x.com", "999999")
    second = service.send_otp("a@x.com")

    assert store.get("a@x.com").attempts == 0
    assert service.verify_otp("a@x.com", first).valid is False
    assert service.verify_otp("a@x.com", second).valid is True


def test_expired_challenge_is_removed(service, clock, store):
    code = service.send_otp("a@x.com")
    clock.advance(OTP_EXPIRY_SECONDS + 1)

    result = service.verify_otp("a@x.com", code)
    assert result.valid is False
    assert result.message.startswith("OTP has expired")
    assert store.get("a@x.com") is None

    assert service.verify_otp("a@x.com", code).message.startswith("No OTP found")


def test_expiry_boundary_is_inclusive(service, clock):
    code = service.send_otp("a@x.com")
    clock.advance(OTP_EXPIRY_SECONDS)
    assert service.verify_otp("a@x.com", code).valid is True


def test_status_reports_remaining_time_and_attempts(service, clock):
    assert service.get_otp_status("a@x.com") == OtpStatus(
        exists=False, message="No OTP request found for this email."
    )

    service.send_otp("a@x.com")
    status = service.get_otp_status("a@x.com")
    assert status.exists is True
    assert status.time_remaining_seconds == 600
    assert status.attempts_remaining == MAX_ATTEMPTS

    service.verify_otp("a@x.com", "not-it")
    clock.advance(0.5)
    status = service.get_otp_status("a@x.com")
    assert status.attempts_remaining == MAX_ATTEMPTS - 1
    assert status.time_remaining_seconds == 600

    clock.advance(OTP_EXPIRY_SECONDS)
    status = service.get_otp_status("a@x.com")
    assert status.exists is False
    assert status.message == "OTP has expired."


def test_clear_otp(service, store):
    service.send_otp("a@x.com")
    service.clear_otp("a@x.com")
    service.clear_otp("nobody@x.com")
    assert store.get("a@x.com") is None


def test_sweep_expired_only_removes_stale(service, clock, store):
    service.send_otp("old@x.com")
    clock.advance(OTP_EXPIRY_SECONDS - 60)
    service.send_otp("new@x.com")
    clock.advance(120)

    assert service.sweep_expired() == 1
    assert store.get("old@x.com") is None
    assert store.get("new@x.com") is not None


def test_send_otp_if_idle_applies_cooldown(service, clock):
    code, _ = service.send_otp_if_idle("a@x.com")
    assert code is not None

    clock.advance(30)
    blocked, status = service.send_otp_if_idle("a@x.com")
    assert blocked is None
    assert status.time_remaining_seconds == OTP_EXPIRY_SECONDS - 30

    clock.advance(OTP_EXPIRY_SECONDS)
    again, _ = service.send_otp_if_idle("a@x.com")
    assert again is not None


def test_send_otp_if_idle_issues_once_under_contention(store):
    def slow_code():
        time.sleep(0.01)
        return "123456"

    service = OtpService(store, generator=slow_code)
    barrier = threading.Barrier(10)
    issued = []

    def request_code():
        barrier.wait()
        code, _ = service.send_otp_if_idle("a@x.com")
        if code is not None:
            issued.append(code)

    threads = [threading.Thread(target=request_code) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert issued == ["123456"]
