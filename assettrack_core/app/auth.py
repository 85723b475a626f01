import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from . import schemas
from .models import User, UserStatus
from .security import (
    get_db, get_current_user, verify_password, get_password_hash,
    create_access_token, create_refresh_token, decode_refresh_token,
    PasswordPolicy, SecurityAuditLog, http_error
)
from .services.exceptions import (
    AssetTrackError, AuthenticationError, ValidationError, DuplicateEmail
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def issue_tokens(user: User) -> schemas.TokenPair:
    """New access/refresh pair; the refresh token is remembered on the user."""
    tokens = schemas.TokenPair(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
    )
    user.refresh_token = tokens.refresh_token
    return tokens


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post("/login")
def login(payload: schemas.LoginIn, request: Request, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()

    failure = None
    if not user:
        failure = "Invalid credentials"
    elif user.status != UserStatus.ACTIVE:
        failure = "User is inactive"
    elif not verify_password(payload.password, user.password_hash):
        failure = "Invalid credentials"

    if failure:
        SecurityAuditLog.log_login_attempt(db, email, False, _client_ip(request), failure)
        raise http_error(AuthenticationError(failure))

    tokens = issue_tokens(user)
    db.commit()
    db.refresh(user)
    SecurityAuditLog.log_login_attempt(db, email, True, _client_ip(request))
    logger.info("User %s logged in", user.email)

    return {
        "message": "Login successful",
        "user": schemas.UserOut.model_validate(user),
        "tokens": tokens,
    }


@router.post("/refresh")
def refresh(payload: schemas.RefreshIn, db: Session = Depends(get_db)):
    """Rotate the token pair. Only the most recently issued refresh token is accepted."""
    try:
        claims = decode_refresh_token(payload.refresh_token)
        user = db.query(User).filter(User.id == int(claims["sub"])).first()
        if not user or user.refresh_token != payload.refresh_token or user.status != UserStatus.ACTIVE:
            raise AuthenticationError("Invalid refresh token")
    except AssetTrackError as e:
        raise http_error(e)
    except ValueError:
        raise http_error(AuthenticationError("Invalid refresh token"))

    tokens = issue_tokens(user)
    db.commit()
    return {"message": "Token refreshed successfully", "tokens": tokens}


@router.post("/logout")
def logout(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    current_user.refresh_token = None
    db.commit()
    logger.info("User %s logged out", current_user.email)
    return {"message": "Logout successful"}


@router.post("/change-password")
def change_password(
    payload: schemas.ChangePasswordIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    try:
        if not verify_password(payload.current_password, current_user.password_hash):
            raise ValidationError.single("current_password", "Current password is incorrect")
        ok, errors = PasswordPolicy.validate(payload.new_password)
        if not ok:
            raise ValidationError([("new_password", msg) for msg in errors])
    except AssetTrackError as e:
        raise http_error(e)

    current_user.password_hash = get_password_hash(payload.new_password)
    db.commit()
    SecurityAuditLog.log_sensitive_action(
        db, current_user.id, "change_password", "users", current_user.id, {}
    )
    return {"message": "Password changed successfully"}


@router.post("/update-email")
def update_email(
    payload: schemas.UpdateEmailIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Change the login email; the token pair is reissued with the new address."""
    new_email = payload.email.strip().lower()
    try:
        if not verify_password(payload.password, current_user.password_hash):
            raise ValidationError.single("password", "Password is incorrect")
        taken = db.query(User.id).filter(User.email == new_email, User.id != current_user.id).first()
        if taken:
            raise DuplicateEmail()
    except AssetTrackError as e:
        raise http_error(e)

    old_email = current_user.email
    current_user.email = new_email
    tokens = issue_tokens(current_user)
    db.commit()
    db.refresh(current_user)
    SecurityAuditLog.log_sensitive_action(
        db, current_user.id, "update_email", "users", current_user.id,
        {"old_email": old_email, "new_email": new_email}
    )

    return {
        "message": "Email updated successfully",
        "user": schemas.UserOut.model_validate(current_user),
        "tokens": tokens,
    }
