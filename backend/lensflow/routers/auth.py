"""Auth endpoints."""
import ipaddress
import logging

import redis
from redis.exceptions import RedisError
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from ..auth import create_user_token, get_current_user, verify_password
from ..config import settings
from ..database import get_db
from ..models import User
from ..schemas import ActorResponse, LoginRequest, TokenResponse
from ..services.permissions import resolve_capabilities

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


_redis_client = None


def _actor_response(user: User) -> ActorResponse:
    return ActorResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        sub_role=user.sub_role,
        organization_id=user.organization_id,
        permissions=dict(resolve_capabilities(user.sub_role)),
    )


def _get_redis():
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


def _get_client_ip(request: Request) -> str:
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For may contain a list: client, proxy1, proxy2
            candidate = forwarded.split(",")[0].strip()
            try:
                ipaddress.ip_address(candidate)
                return candidate
            except ValueError:
                pass

    if request.client:
        return request.client.host
    return "unknown"


def _set_no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"


def _incr_with_ttl(key: str, ttl_seconds: int) -> tuple[int, int]:
    """
    Increment a Redis counter and ensure it has an expiry.
    Returns (value, ttl_remaining_seconds).
    """
    r = _get_redis()
    value = r.incr(key)
    if value == 1:
        r.expire(key, ttl_seconds)
    ttl = r.ttl(key)
    if ttl is None or ttl < 0:
        ttl = ttl_seconds
    return int(value), int(ttl)


def _enforce_login_rate_limits(*, request: Request, email: str | None) -> None:
    ip = _get_client_ip(request)
    try:
        attempts, ttl = _incr_with_ttl(f"lensflow:rl:login:ip:{ip}", 60)
        if attempts > settings.AUTH_LOGIN_IP_LIMIT_PER_MINUTE:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many login attempts. Try again later.",
                headers={"Retry-After": str(ttl)},
            )

        if email:
            lock_ttl = _get_redis().ttl(f"lensflow:lock:login:user:{email}")
            if lock_ttl and lock_ttl > 0:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Account temporarily locked due to failed logins. Try again later.",
                    headers={"Retry-After": str(int(lock_ttl))},
                )
    except RedisError:
        # Fail open if Redis is down to avoid total auth outage.
        logger.exception("Redis error during login rate limiting (fail-open)")


def _register_login_failure(*, user: User | None, email: str | None) -> None:
    if not email or not user:
        return
    try:
        fails, _ = _incr_with_ttl(
            f"lensflow:fail:login:user:{email}",
            settings.AUTH_LOGIN_USER_LOCK_SECONDS,
        )
        if fails >= settings.AUTH_LOGIN_USER_FAIL_THRESHOLD:
            _get_redis().set(
                f"lensflow:lock:login:user:{email}",
                "1",
                ex=settings.AUTH_LOGIN_USER_LOCK_SECONDS,
            )
            logger.warning("Login for %s locked after %s failures", email, fails)
    except RedisError:
        logger.exception("Redis error during login failure tracking (fail-open)")


def _clear_login_failures(*, email: str | None) -> None:
    if not email:
        return
    try:
        r = _get_redis()
        r.delete(f"lensflow:fail:login:user:{email}")
        r.delete(f"lensflow:lock:login:user:{email}")
    except RedisError:
        logger.exception("Redis error during login failure cleanup (ignored)")


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Login with email and password."""
    _set_no_store(response)
    email = (payload.email or "").strip().lower()

    _enforce_login_rate_limits(request=request, email=email or None)

    user = db.query(User).filter(
        User.email == email,
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(payload.password, user.password_hash):
        _register_login_failure(user=user, email=email or None)
        logger.info("Failed login attempt for %s", email or "<empty>")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    _clear_login_failures(email=email)

    return TokenResponse(
        access_token=create_user_token(user),
        expires_in=int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60,
        user=_actor_response(user),
    )


@router.get("/me", response_model=ActorResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """Current actor with the resolved capability record."""
    return _actor_response(current_user)
