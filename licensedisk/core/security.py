"""
Security utilities for service authentication, operator scoping and rate limiting.

Sign-in is handled by the UI shell. Requests reach this service with an
API key plus headers naming the operator and the business they act for,
and every scan operation is scoped to that business.
"""

import secrets
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from licensedisk.core.config import get_settings
from licensedisk.core.logging import get_logger

logger = get_logger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class Operator:
    """
    The person scanning, and the business the scan belongs to.

    Attributes:
        business_id: Tenant scope for every read and write.
        user_id: Identifier of the operator (recorded as scanned_by / verified_by).
        email: Operator e-mail, shown on duplicate prompts.
    """

    business_id: str
    user_id: str
    email: str | None = None


async def verify_api_key(
    api_key: Annotated[str | None, Depends(api_key_header)],
) -> None:
    """
    Reject requests that do not carry the shared service key.

    Raises:
        HTTPException: 401 when the X-API-Key header is absent or wrong.
    """
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header",
        )

    if not secrets.compare_digest(api_key, get_settings().api_key):
        logger.warning("api_key_invalid", reason="mismatch")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


async def resolve_operator(
    x_business_id: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_email: Annotated[str | None, Header()] = None,
) -> Operator:
    """
    Build the operator identity from request headers.

    A business ID is mandatory: without it no scan may be read or written.

    Raises:
        HTTPException: If the business header is missing or blank.
    """
    business_id = (x_business_id or "").strip()
    if not business_id:
        logger.warning("operator_rejected", reason="missing_business_id")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Business-ID header is required",
        )

    return Operator(
        business_id=business_id,
        user_id=(x_user_id or "").strip() or "anonymous",
        email=(x_user_email or "").strip() or None,
    )


@dataclass
class RateLimiter:
    """
    Sliding-window request throttle kept in process memory.

    Keys are opaque strings; see ``throttle_key`` for how requests map to them.
    """

    requests_per_window: int
    window_seconds: int
    clock: Callable[[], float] = time.monotonic
    _hits: dict[str, deque[float]] = field(default_factory=lambda: defaultdict(deque))

    def is_allowed(self, key: str) -> bool:
        """Record a hit for ``key`` unless its window is already full."""
        now = self.clock()
        hits = self._hits[key]
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

        if len(hits) >= self.requests_per_window:
            return False
        hits.append(now)
        return True

    def reset(self) -> None:
        self._hits.clear()


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter, building it from settings on first use."""
    global _rate_limiter
    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = RateLimiter(
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _rate_limiter


def throttle_key(request: Request) -> str:
    """Scope throttling to the business header and the caller's address."""
    client = request.client.host if request.client else "unknown"
    business = request.headers.get("X-Business-ID", "").strip() or "-"
    return f"{business}:{client}"


async def check_rate_limit(request: Request) -> None:
    """
    FastAPI dependency that rejects callers over their request allowance.

    Raises:
        HTTPException: 429 with a Retry-After header.
    """
    rate_limiter = get_rate_limiter()
    key = throttle_key(request)

    if not rate_limiter.is_allowed(key):
        logger.warning("rate_limit_exceeded", throttle_key=key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many scan requests, slow down",
            headers={"Retry-After": str(rate_limiter.window_seconds)},
        )
