import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import auth
import models
import schemas
from database import get_db, transaction
from errors import AuthenticationError, ValidationError
from permissions import Role, authorize, ensure_self_or_admin
from request_context import RequestContext, get_request_context
from routers.common import add_action_fallback, load_or_404, profile_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

VIEW_DENIED = "Forbidden: You can only access your own profile"
UPDATE_DENIED = "Forbidden: You can only update your own profile"


def _target(db: Session, current_user: models.User, user_id: Optional[int], denied: str) -> models.User:
    target_id = current_user.id if user_id is None else user_id
    ensure_self_or_admin(current_user, target_id, denied)
    return load_or_404(db, models.User, target_id, "User not found")


def _profile_response(user: models.User) -> dict:
    data = schemas.to_dict(schemas.UserOut, user)
    profile = profile_payload(user)
    if profile:
        profile = {key: value for key, value in profile.items() if key not in ("id", "user_id")}
        data.update(profile)
    return data


def _user_courses(db: Session, user: models.User) -> list:
    if user.type == Role.STUDENT.value:
        rows = db.query(models.Course, models.Enrollment).join(
            models.Enrollment, models.Enrollment.course_id == models.Course.id
        ).filter(
            models.Enrollment.student_id == user.id
        ).order_by(models.Course.semester, models.Course.name).all()
        return [
            schemas.to_dict(
                schemas.CourseOut, course,
                grade_point=enrollment.grade_point,
                grade_letter=enrollment.grade_letter,
                enrollment_date=enrollment.enrollment_date
            )
            for course, enrollment in rows
        ]

    courses = db.query(models.Course).filter(
        models.Course.instructor_id == user.id
    ).order_by(models.Course.semester, models.Course.name).all()
    return [schemas.to_dict(schemas.CourseOut, course) for course in courses]


# ---------------------------
# READ
# ---------------------------
@router.get("")
def get_own_info(current_user: models.User = Depends(auth.get_current_user)):
    return schemas.to_dict(schemas.UserOut, current_user)


@router.get("/{user_id:int}")
def get_user_info(user_id: int, db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    user = _target(db, current_user, user_id, VIEW_DENIED)
    return schemas.to_dict(schemas.UserOut, user)


@router.get("/{user_id:int}/profile")
def get_user_profile(user_id: int, db: Session = Depends(get_db),
                     current_user: models.User = Depends(auth.get_current_user)):
    user = _target(db, current_user, user_id, VIEW_DENIED)
    return _profile_response(user)


@router.get("/{user_id:int}/courses")
def get_user_courses(user_id: int, db: Session = Depends(get_db),
                     current_user: models.User = Depends(auth.get_current_user)):
    user = _target(db, current_user, user_id, VIEW_DENIED)
    return _user_courses(db, user)


# ---------------------------
# UPDATE PROFILE
# ---------------------------
def _update_profile(db: Session, ctx: RequestContext, user: models.User) -> dict:
    user_fields = ctx.parse(schemas.UserUpdate).model_dump(exclude_unset=True, exclude_none=True)

    if user.type == Role.STUDENT.value:
        schema, profile_model, profile = schemas.StudentProfileUpdate, models.StudentProfile, user.student_profile
    elif user.type == Role.FACULTY.value:
        schema, profile_model, profile = schemas.FacultyProfileUpdate, models.FacultyProfile, user.faculty_profile
    else:
        schema = profile_model = profile = None

    profile_fields = {}
    if schema is not None:
        profile_fields = ctx.parse(schema).model_dump(exclude_unset=True, exclude_none=True)

    with transaction(db):
        for field, value in user_fields.items():
            setattr(user, field, value.strip() if isinstance(value, str) else value)

        if profile_fields:
            if profile is None:
                profile = profile_model(user_id=user.id)
                db.add(profile)
            for field, value in profile_fields.items():
                setattr(profile, field, value)

    db.refresh(user)
    return _profile_response(user)


@router.put("")
@router.put("/profile")
def update_own_profile(ctx: RequestContext = Depends(get_request_context),
                       db: Session = Depends(get_db),
                       current_user: models.User = Depends(auth.get_current_user)):
    return _update_profile(db, ctx, current_user)


@router.put("/{user_id:int}")
@router.put("/{user_id:int}/profile")
def update_user_profile(user_id: int, ctx: RequestContext = Depends(get_request_context),
                        db: Session = Depends(get_db),
                        current_user: models.User = Depends(auth.get_current_user)):
    user = _target(db, current_user, user_id, UPDATE_DENIED)
    return _update_profile(db, ctx, user)


# ---------------------------
# PASSWORD
# ---------------------------
@router.put("/{user_id:int}/password")
def update_password(user_id: int, ctx: RequestContext = Depends(get_request_context),
                    db: Session = Depends(get_db),
                    current_user: models.User = Depends(auth.get_current_user)):
    user = _target(db, current_user, user_id, UPDATE_DENIED)
    data = ctx.parse(schemas.PasswordChange)

    if data.new_password != data.confirm_password:
        raise ValidationError("New passwords do not match")

    if not auth.verify_password(data.current_password, user.password):
        raise AuthenticationError("Current password is incorrect")

    user.password = auth.hash_password(data.new_password)
    db.commit()
    return {"message": "Password updated successfully"}


# ---------------------------
# ACCOUNT STATUS (admin only)
# ---------------------------
@router.put("/{user_id:int}/status")
def update_status(user_id: int, ctx: RequestContext = Depends(get_request_context),
                  db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "users.set_status")
    user = load_or_404(db, models.User, user_id, "User not found")
    data = ctx.parse(schemas.StatusUpdate)

    with transaction(db):
        user.status = data.status
        if data.status == "inactive":
            db.query(models.UserSession).filter(models.UserSession.user_id == user.id).delete()

    logger.info("User %s set account %s to %s", current_user.id, user_id, data.status)
    return {"message": "Account status updated", "user": schemas.to_dict(schemas.UserOut, user)}


add_action_fallback(router)
