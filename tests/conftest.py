from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from main import create_app
from utils.otp_service import OtpService
from utils.otp_store import MemoryOtpStore


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.error: Exception | None = None

    def __call__(self, email: str, code: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((email, code))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryOtpStore:
    return MemoryOtpStore()


@pytest.fixture
def service(store, clock) -> OtpService:
    return OtpService(store, clock=clock)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def client(service, mailer):
    app = create_app(service=service, mailer=mailer)
    with TestClient(app) as c:
        yield c
