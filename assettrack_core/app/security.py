"""
Security Module
===============
- Secret key management for access and refresh tokens
- Password hashing (bcrypt) and password policy
- JWT issue/verify
- Role-based access control
- Audit logging of sensitive actions
- Mapping of service errors onto HTTP responses
"""

import os
import json
import logging
import secrets
import hashlib
import warnings
from datetime import timedelta
from typing import Optional, List

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, ExpiredSignatureError, jwt
import bcrypt
from sqlalchemy.orm import Session

from .db import SessionLocal
from .models import User, UserStatus, AuditLog, utcnow
from .services.exceptions import (
    AssetTrackError, ValidationError, NotFoundError, ConflictError,
    DomainInvariantError, AuthenticationError
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

def get_secret_key() -> str:
    """
    Get secret key from environment with validation.
    A missing key is fatal when ENVIRONMENT=production.
    """
    secret = os.getenv("ASSETTRACK_SECRET_KEY")

    if not secret:
        env = os.getenv("ENVIRONMENT", "development")
        if env == "production":
            raise RuntimeError(
                "ASSETTRACK_SECRET_KEY environment variable must be set in production. "
                "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
            )
        warnings.warn(
            "Using auto-generated secret key. Set ASSETTRACK_SECRET_KEY for production!",
            RuntimeWarning
        )
        # Deterministic so tokens survive a dev-server reload
        secret = hashlib.sha256(b"assettrack-dev-insecure-key").hexdigest()

    if len(secret) < 32:
        raise RuntimeError("ASSETTRACK_SECRET_KEY must be at least 32 characters")

    return secret


def get_refresh_secret_key(access_secret: str) -> str:
    secret = os.getenv("ASSETTRACK_REFRESH_SECRET_KEY")
    if secret:
        if len(secret) < 32:
            raise RuntimeError("ASSETTRACK_REFRESH_SECRET_KEY must be at least 32 characters")
        return secret
    return hashlib.sha256(f"refresh:{access_secret}".encode("utf-8")).hexdigest()


SECRET_KEY = get_secret_key()
REFRESH_SECRET_KEY = get_refresh_secret_key(SECRET_KEY)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("TOKEN_EXPIRE_MINUTES", "15"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))


# =============================================================================
# PASSWORD SECURITY
# =============================================================================

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 72  # bcrypt ignores anything past 72 bytes


class PasswordPolicy:
    """Password strength validation"""

    @staticmethod
    def validate(password: str) -> tuple[bool, List[str]]:
        """
        Returns:
            (is_valid, list_of_errors)
        """
        errors = []

        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        if len(password.encode("utf-8")) > MAX_PASSWORD_LENGTH:
            errors.append(f"Password must not exceed {MAX_PASSWORD_LENGTH} bytes")

        return len(errors) == 0, errors


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=12)).decode('utf-8')


# =============================================================================
# TOKEN MANAGEMENT
# =============================================================================

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """Short-lived token carrying the acting principal (user id, email, role)."""
    now = utcnow()
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value if hasattr(user.role, "value") else user.role,
        "exp": expire,
        "iat": now,
        "jti": secrets.token_urlsafe(16),
        "type": "access",
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_refresh_token(user: User) -> str:
    now = utcnow()
    to_encode = {
        "sub": str(user.id),
        "exp": now + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
        "iat": now,
        "jti": secrets.token_urlsafe(16),
        "type": "refresh",
    }
    return jwt.encode(to_encode, REFRESH_SECRET_KEY, algorithm=ALGORITHM)


def _decode(token: str, secret: str, expected_type: str) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired") from e
    except JWTError as e:
        raise AuthenticationError("Invalid token") from e
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise AuthenticationError("Invalid token payload")
    return payload


def decode_refresh_token(token: str) -> dict:
    return _decode(token, REFRESH_SECRET_KEY, "refresh")


def decode_token(token: str) -> dict:
    """
    Decode and validate an access token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return _decode(token, SECRET_KEY, "access")
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"}
        )


# =============================================================================
# DEPENDENCY INJECTION
# =============================================================================

def get_db():
    """Database session dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token.
    """
    payload = decode_token(token)

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user = db.query(User).filter(User.id == user_id).first()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if user.status != UserStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled"
        )

    return user


def require_role(*allowed_roles):
    """
    Dependency that requires user to have one of the specified roles.
    """
    allowed = {getattr(r, "value", r) for r in allowed_roles}

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if getattr(current_user.role, "value", current_user.role) not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(sorted(allowed))}"
            )
        return current_user

    return role_checker


# =============================================================================
# ERROR MAPPING
# =============================================================================

ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DomainInvariantError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
)


def http_error(exc: AssetTrackError) -> HTTPException:
    """Translate a service-layer error into the HTTPException the routers raise."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_cls, code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            status_code = code
            break

    detail = {"message": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError):
        detail["errors"] = [{"field": field, "message": msg} for field, msg in exc.errors]

    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# AUDIT LOGGING
# =============================================================================

class SecurityAuditLog:
    """Audit trail for logins and ledger changes"""

    @staticmethod
    def log_login_attempt(
        db: Session,
        email: str,
        success: bool,
        ip_address: Optional[str] = None,
        failure_reason: Optional[str] = None
    ):
        """Log a login attempt"""
        log = AuditLog(
            entity_type="auth",
            entity_id=0,
            action="login_attempt",
            new_values=json.dumps({
                "email": email,
                "success": success,
                "failure_reason": failure_reason,
            }),
            ip_address=ip_address,
        )
        db.add(log)
        db.commit()
        if not success:
            logger.warning("Failed login for %s: %s", email, failure_reason)

    @staticmethod
    def log_sensitive_action(
        db: Session,
        user_id: Optional[int],
        action: str,
        entity_type: str,
        entity_id: int,
        details: dict,
        ip_address: Optional[str] = None
    ):
        """Log a sensitive operation for audit trail"""
        log = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            new_values=json.dumps(details, default=str),
            user_id=user_id,
            ip_address=ip_address
        )
        db.add(log)
        db.commit()
