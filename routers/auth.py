import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

import auth
import config
import models
import schemas
from database import get_db, transaction
from errors import AuthenticationError, AuthorizationError, ValidationError
from permissions import Role, authorize
from request_context import RequestContext, get_request_context
from routers.common import add_action_fallback, profile_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

RESET_MESSAGE = "If your email is registered, you will receive a password reset link"


# ---------------------------
# LOGIN API
# ---------------------------
@router.post("/login")
def login(request: Request, ctx: RequestContext = Depends(get_request_context),
          db: Session = Depends(get_db)):
    data = ctx.parse(schemas.Login)
    email = data.email.strip()

    user = db.query(models.User).filter(models.User.email == email).first()
    if not user or not auth.verify_password(data.password, user.password):
        logger.info("Rejected login for %s", email)
        raise AuthenticationError("Invalid email or password")

    if user.status != "active":
        raise AuthorizationError("Your account is not active. Please contact the administrator.")

    expires_at = models.utcnow() + timedelta(seconds=config.SESSION_EXPIRY_SECONDS)
    session = models.UserSession(
        user_id=user.id,
        token=auth.create_session_token(),
        expires_at=expires_at,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent", "")
    )
    db.add(session)
    db.commit()
    logger.info("User %s logged in", user.id)

    return {
        "token": session.token,
        "expires_at": expires_at,
        "user": schemas.to_dict(schemas.UserOut, user),
        "profile": profile_payload(user),
    }


# ---------------------------
# LOGOUT API
# ---------------------------
@router.post("/logout")
def logout(request: Request, db: Session = Depends(get_db)):
    token = auth.extract_bearer_token(request.headers.get("Authorization"))
    if token:
        db.query(models.UserSession).filter(models.UserSession.token == token).delete()
        db.commit()
    return {"message": "Logged out successfully"}


# ---------------------------
# REGISTER API (admin only)
# ---------------------------
@router.post("/register", status_code=201)
def register(ctx: RequestContext = Depends(get_request_context),
             db: Session = Depends(get_db),
             current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "auth.register")
    data = ctx.parse(schemas.Register)

    if data.type not in Role.values():
        raise ValidationError("Invalid user type")

    email = data.email.strip()
    if db.query(models.User).filter(models.User.email == email).first():
        raise ValidationError("Email already exists")

    with transaction(db):
        user = models.User(
            full_name=data.full_name.strip(),
            email=email,
            password=auth.hash_password(data.password),
            type=data.type
        )
        db.add(user)
        db.flush()

        if data.type == Role.STUDENT.value:
            db.add(models.StudentProfile(
                user_id=user.id,
                roll_number=data.roll_number,
                department_id=data.department_id,
                semester=data.semester
            ))
        elif data.type == Role.FACULTY.value:
            db.add(models.FacultyProfile(
                user_id=user.id,
                department_id=data.department_id,
                designation=data.designation,
                specialization=data.specialization
            ))

    logger.info("User %s registered %s account %s", current_user.id, data.type, user.id)
    return {"message": "User registered successfully", "user_id": user.id}


# ---------------------------
# PASSWORD RESET
# ---------------------------
@router.post("/reset-password")
def reset_password(ctx: RequestContext = Depends(get_request_context),
                   db: Session = Depends(get_db)):
    data = ctx.parse(schemas.ResetPasswordRequest)
    payload = {"message": RESET_MESSAGE}

    user = db.query(models.User).filter(models.User.email == data.email.strip()).first()
    if user is None:
        return payload

    token, expires_at = auth.create_reset_token(user.id)
    reset = db.query(models.PasswordReset).filter(
        models.PasswordReset.user_id == user.id
    ).first()
    if reset is None:
        reset = models.PasswordReset(user_id=user.id)
        db.add(reset)
    reset.token = token
    reset.expires_at = expires_at
    reset.created_at = models.utcnow()
    db.commit()

    if config.EXPOSE_RESET_TOKEN:
        payload["debug_token"] = token
    return payload


@router.post("/reset-password/confirm")
def confirm_reset_password(ctx: RequestContext = Depends(get_request_context),
                           db: Session = Depends(get_db)):
    data = ctx.parse(schemas.ResetPasswordConfirm)
    if data.new_password != data.confirm_password:
        raise ValidationError("New passwords do not match")

    user_id = auth.decode_reset_token(data.token)
    reset = None
    if user_id is not None:
        reset = db.query(models.PasswordReset).filter(
            models.PasswordReset.user_id == user_id,
            models.PasswordReset.token == data.token,
            models.PasswordReset.expires_at > models.utcnow()
        ).first()
    if reset is None:
        raise ValidationError("Invalid or expired reset token")

    with transaction(db):
        user = db.get(models.User, user_id)
        user.password = auth.hash_password(data.new_password)
        db.delete(reset)
        # Existing logins do not survive a password reset
        db.query(models.UserSession).filter(models.UserSession.user_id == user_id).delete()

    logger.info("Password reset completed for user %s", user_id)
    return {"message": "Password has been reset successfully"}


# ---------------------------
# CURRENT USER
# ---------------------------
@router.get("/user")
def current_user_info(current_user: models.User = Depends(auth.get_current_user)):
    return {
        "user": schemas.to_dict(schemas.UserOut, current_user),
        "profile": profile_payload(current_user),
    }


add_action_fallback(router)
