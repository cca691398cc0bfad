"""Login throttling.

Two independent brakes, both kept in Redis so every API instance sees the
same counters:

- a sliding window per client (IP + User-Agent fingerprint) over all
  credential submissions to /auth/login and /auth/mfa/verify
- a failure counter per account (tenant code + email); reaching the lockout
  threshold locks the client that caused it out for LOCKOUT_DURATION

Without Redis, or when Redis errors mid-request, the throttle is open and a
warning is logged. Login itself never depends on Redis.
"""

import hashlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from redis import Redis
from redis.exceptions import RedisError

from ..config import get_settings
from ..errors import RateLimitedError

logger = logging.getLogger(__name__)

KEY_PREFIX = "warden:throttle"


@dataclass(frozen=True)
class ThrottlePolicy:
    window_seconds: int = 900
    max_attempts: int = 5
    lockout_threshold: int = 10
    lockout_seconds: int = 1800

    @classmethod
    def from_env(cls) -> "ThrottlePolicy":
        return cls(
            window_seconds=int(os.getenv("RATE_LIMIT_WINDOW", "900")),
            max_attempts=int(os.getenv("RATE_LIMIT_MAX_ATTEMPTS", "5")),
            lockout_threshold=int(os.getenv("LOCKOUT_THRESHOLD", "10")),
            lockout_seconds=int(os.getenv("LOCKOUT_DURATION", "1800")),
        )


def connect_redis() -> Optional[Redis]:
    """Redis client for throttling, or None when Redis is unreachable."""
    try:
        client = Redis.from_url(get_settings().REDIS_URL, decode_responses=True, socket_connect_timeout=1)
        client.ping()
        return client
    except (RedisError, OSError):
        logger.warning("Redis unavailable; login throttling disabled")
        return None


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:32]


def client_fingerprint(request: Request) -> str:
    """Hashed IP + User-Agent; raw addresses never reach Redis."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else "unknown"
    return _digest(f"{ip}:{request.headers.get('User-Agent', '')}")


def account_fingerprint(tenant_code: str, email: str) -> str:
    return _digest(f"{tenant_code}:{email.lower()}")


class LoginThrottle:
    """Redis-backed brute-force protection for credential endpoints"""

    def __init__(self, redis_client: Optional[Redis] = None, policy: Optional[ThrottlePolicy] = None):
        self.redis = redis_client if redis_client is not None else connect_redis()
        self.policy = policy or ThrottlePolicy.from_env()

    @staticmethod
    def _window_key(client: str) -> str:
        return f"{KEY_PREFIX}:window:{client}"

    @staticmethod
    def _lock_key(client: str) -> str:
        return f"{KEY_PREFIX}:lock:{client}"

    @staticmethod
    def _failure_key(account: str) -> str:
        return f"{KEY_PREFIX}:fail:{account}"

    def enforce(self, request: Request) -> None:
        """Count one attempt for the client, or refuse it.

        Raises:
            RateLimitedError: Client locked out, or over the window limit
        """
        if not self.redis:
            return

        client = client_fingerprint(request)
        now = time.time()
        try:
            locked_for = self.redis.ttl(self._lock_key(client))
            if locked_for and locked_for > 0:
                raise RateLimitedError(
                    f"Too many failed attempts. Locked for {locked_for} seconds.", retry_after=locked_for
                )

            window = self._window_key(client)
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(window, 0, now - self.policy.window_seconds)
            pipe.zcard(window)
            _, attempts = pipe.execute()
            if attempts >= self.policy.max_attempts:
                raise RateLimitedError(
                    "Too many login attempts. Please wait before trying again.",
                    retry_after=self.policy.window_seconds,
                )

            pipe = self.redis.pipeline()
            pipe.zadd(window, {f"{now:.6f}": now})
            pipe.expire(window, self.policy.window_seconds)
            pipe.execute()
        except RedisError:
            logger.warning("Login throttle check failed; allowing request", exc_info=True)

    def record_failure(self, tenant_code: str, email: str, request: Request) -> bool:
        """Count a failed login for the account.

        Returns:
            True if this failure locked the client out
        """
        if not self.redis:
            return False

        key = self._failure_key(account_fingerprint(tenant_code, email))
        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, self.policy.window_seconds)
            failures, _ = pipe.execute()
            if failures < self.policy.lockout_threshold:
                return False
            self.redis.setex(self._lock_key(client_fingerprint(request)), self.policy.lockout_seconds, "1")
        except RedisError:
            logger.warning("Could not record failed login", exc_info=True)
            return False

        logger.warning("Client locked out after repeated failed logins", extra={"failures": failures})
        return True

    def reset(self, tenant_code: str, email: str) -> None:
        """Forget an account's failures after a successful login."""
        if not self.redis:
            return
        try:
            self.redis.delete(self._failure_key(account_fingerprint(tenant_code, email)))
        except RedisError:
            logger.warning("Could not reset failed login counter", exc_info=True)

    def clear(self) -> None:
        """Drop every throttle key (test isolation, operator unlock)."""
        if not self.redis:
            return
        keys = list(self.redis.scan_iter(f"{KEY_PREFIX}:*"))
        if keys:
            self.redis.delete(*keys)


login_throttle = LoginThrottle()


def check_rate_limit(request: Request) -> None:
    """Dependency for credential endpoints:

        @router.post("/login")
        def login(request: Request, _: None = Depends(check_rate_limit)):
            ...
    """
    login_throttle.enforce(request)
