"""
Redis locks that serialize payout work across workers.

Row locks (select_for_update) only cover a single ledger write. Creating
a payout spans an eligibility read and an insert, and a retry spans a
ledger write, a provider call and another write, so both run under a
Redis lock as well.

Scopes:
    booking    payout:booking:<booking_id>, held while checking eligibility
               and creating the payout row
    execution  payout:execute:<payout_id>, held for a whole retry or
               settlement update

Usage:
    from payouts.locks import PayoutLock

    with PayoutLock.for_booking(booking_id, ttl=120, wait=10):
        create_payout()
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payouts.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

logger = logging.getLogger(__name__)

BOOKING_SCOPE = "booking"
EXECUTION_SCOPE = "execute"

# Delete the key only while it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_POLL_INTERVAL = 0.05


class PayoutLock:
    """
    Token-owned Redis lock for one booking or payout.

    The key expires after ttl seconds so a crashed worker cannot block a
    booking forever. Only the holder of the token can release it.

    Args:
        scope: BOOKING_SCOPE or EXECUTION_SCOPE
        subject_id: Booking or payout id the lock protects
        ttl: Seconds before Redis drops the key; keep it above the
            provider timeout so the lock outlives an in-flight transfer
        wait: Seconds to keep polling for the lock; 0 fails immediately

    Raises (on enter):
        LockAcquisitionError: Lock still held by someone else after wait
    """

    def __init__(
        self,
        scope: str,
        subject_id: Any,
        ttl: int = 60,
        wait: float = 10.0,
    ) -> None:
        self.scope = scope
        self.subject_id = subject_id
        self.key = f"lock:payout:{scope}:{subject_id}"
        self.ttl = ttl
        self.wait = wait
        self._token: str | None = None
        self._client: Redis | None = None

    @classmethod
    def for_booking(cls, booking_id: Any, **kwargs) -> PayoutLock:
        return cls(BOOKING_SCOPE, booking_id, **kwargs)

    @classmethod
    def for_payout(cls, payout_id: Any, **kwargs) -> PayoutLock:
        return cls(EXECUTION_SCOPE, payout_id, **kwargs)

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = get_redis_connection("default")
        return self._client

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> None:
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait

        while not self.client.set(self.key, token, nx=True, ex=self.ttl):
            if time.monotonic() >= deadline:
                logger.warning(
                    "Payout lock busy",
                    extra={"lock_key": self.key, "wait": self.wait},
                )
                raise LockAcquisitionError(
                    f"Another worker holds the {self.scope} lock for {self.subject_id}",
                    details={"key": self.key, "wait": self.wait},
                )
            time.sleep(_POLL_INTERVAL)

        self._token = token

    def release(self) -> bool:
        """
        Give the lock back.

        Returns False when we never held it or the key already expired
        and was taken by another worker.
        """
        if self._token is None:
            return False

        token, self._token = self._token, None
        release = self.client.register_script(_RELEASE_SCRIPT)
        released = bool(release(keys=[self.key], args=[token]))
        if not released:
            logger.warning(
                "Payout lock expired before release",
                extra={"lock_key": self.key, "ttl": self.ttl},
            )
        return released

    def __enter__(self) -> PayoutLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


__all__ = [
    "BOOKING_SCOPE",
    "EXECUTION_SCOPE",
    "PayoutLock",
]
