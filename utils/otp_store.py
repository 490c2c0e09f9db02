from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import asdict
from typing import Iterator, Optional

import redis

from utils.otp_service import OTP_EXPIRY_SECONDS, Challenge


logger = logging.getLogger(__name__)

# Redis keys outlive the expiry window so the service can still report "expired".
STORE_TTL_SECONDS = 2 * OTP_EXPIRY_SECONDS


class MemoryOtpStore:
    """
    Process-local identity -> Challenge map.

    Only valid for a single-instance deployment: every process holds its own
    map, so cooldown and attempt limits are per process.
    """

    def __init__(self) -> None:
        self._data: dict[str, Challenge] = {}
        self._guard = threading.RLock()

    @contextmanager
    def lock(self, identity: str) -> Iterator[None]:
        # One lock for the whole map; contention is low.
        with self._guard:
            yield

    def get(self, identity: str) -> Optional[Challenge]:
        with self._guard:
            return self._data.get(identity)

    def set(self, identity: str, challenge: Challenge) -> None:
        with self._guard:
            self._data[identity] = challenge

    def delete(self, identity: str) -> None:
        with self._guard:
            self._data.pop(identity, None)

    def items(self) -> list[tuple[str, Challenge]]:
        with self._guard:
            return list(self._data.items())

    def __len__(self) -> int:
        with self._guard:
            return len(self._data)


class RedisOtpStore:
    """Shared store for multi-instance deployments. Keys: otp:{identity}."""

    KEY_PREFIX = "otp:"
    LOCK_PREFIX = "otp-lock:"

    def __init__(self, client, *, ttl_seconds: int = STORE_TTL_SECONDS, lock_timeout: float = 5.0) -> None:
        self._r = client
        self._ttl = max(1, int(ttl_seconds))
        self._lock_timeout = lock_timeout

    @contextmanager
    def lock(self, identity: str) -> Iterator[None]:
        with self._r.lock(f"{self.LOCK_PREFIX}{identity}", timeout=self._lock_timeout):
            yield

    def get(self, identity: str) -> Optional[Challenge]:
        raw = self._r.get(f"{self.KEY_PREFIX}{identity}")
        if not raw:
            return None
        return Challenge(**json.loads(raw))

    def set(self, identity: str, challenge: Challenge) -> None:
        # Redis TTL only reclaims memory; expiry decisions stay with the service clock.
        self._r.setex(f"{self.KEY_PREFIX}{identity}", self._ttl, json.dumps(asdict(challenge)))

    def delete(self, identity: str) -> None:
        self._r.delete(f"{self.KEY_PREFIX}{identity}")

    def items(self) -> list[tuple[str, Challenge]]:
        out = []
        for key in self._r.scan_iter(match=f"{self.KEY_PREFIX}*"):
            identity = key[len(self.KEY_PREFIX):]
            challenge = self.get(identity)
            if challenge is not None:
                out.append((identity, challenge))
        return out


def build_store():
    url = os.getenv("REDIS_URL")
    if url:
        logger.info("Using Redis OTP store")
        return RedisOtpStore(redis.Redis.from_url(url, decode_responses=True))
    return MemoryOtpStore()
