"""Authentication and authorization."""
from typing import Optional
import hmac
import logging
import time
from uuid import UUID
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from .config import settings
from .database import get_db
from .models import User
from .security import require_capability
from .services.permissions import Capability

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = logging.getLogger(__name__)

# Bearer token scheme; missing credentials are reported as 401 below.
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        # Invalid/corrupted hash should not crash login flow.
        logger.exception("Password verification failed due to invalid hash format")
        return False


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_in: Optional[int] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    now = int(time.time())
    lifetime = expires_in if expires_in is not None else int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60
    to_encode.update({"exp": now + lifetime, "iat": now, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_user_token(user: User) -> str:
    return create_access_token({"sub": str(user.id), "ver": int(user.token_version or 0)})


def decode_token(token: str) -> dict:
    """Decode JWT token with manual exp/iat checks (leeway for clock skew)."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _unauthorized()

    now = int(time.time())
    try:
        exp_int = int(payload["exp"])
    except (KeyError, TypeError, ValueError):
        raise _unauthorized()
    if now > exp_int + int(settings.JWT_LEEWAY_SECONDS):
        raise _unauthorized("Token expired")

    iat = payload.get("iat")
    if iat is not None:
        try:
            iat_int = int(iat)
        except (TypeError, ValueError):
            raise _unauthorized()
        # Reject tokens issued far in the future (clock skew / malicious tokens).
        if iat_int > now + int(settings.JWT_LEEWAY_SECONDS):
            raise _unauthorized()
    return payload


def _parse_token_subject(payload: dict) -> UUID:
    """Parse and validate JWT subject as UUID."""
    sub = payload.get("sub")
    if not sub:
        raise _unauthorized()
    try:
        return UUID(str(sub))
    except ValueError:
        raise _unauthorized()


def _assert_token_not_revoked(user: User, payload: dict) -> None:
    try:
        token_ver = int(payload.get("ver", 0))
    except (TypeError, ValueError):
        raise _unauthorized()
    if int(user.token_version or 0) != token_ver:
        raise _unauthorized("Token has been revoked")


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    payload = decode_token(credentials.credentials)

    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")

    user_id = _parse_token_subject(payload)
    user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    if user is None:
        raise _unauthorized("User not found or inactive")

    _assert_token_not_revoked(user, payload)
    return user


# Permission checks
class PermissionChecker:
    """Route dependency enforcing one capability from the resolver."""

    def __init__(self, required: Capability):
        self.required = required

    def __call__(self, current_user: User = Depends(get_current_user)) -> User:
        require_capability(current_user, self.required)
        return current_user


def require_external_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[str] = Header(None),
) -> None:
    """Static shared-secret check for the external ordering-system bridge."""
    expected = settings.EXTERNAL_API_KEY
    if not expected:
        logger.error("EXTERNAL_API_KEY is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")

    supplied = x_api_key
    if not supplied and authorization and authorization.startswith("Bearer "):
        supplied = authorization[len("Bearer "):]
    if not supplied or not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
