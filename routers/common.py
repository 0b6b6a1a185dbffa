import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import models
import schemas
from errors import MethodNotAllowedError, NotFoundError
from permissions import Role
from request_context import RequestContext, get_request_context

logger = logging.getLogger(__name__)

ACTION_METHODS = ["GET", "POST", "PUT", "DELETE"]


def add_action_fallback(router: APIRouter):
    """Answer 405 for any method/action the router does not define.

    Must be called after every real route has been registered.
    """

    @router.api_route("", methods=ACTION_METHODS, include_in_schema=False)
    def invalid_root_action(ctx: RequestContext = Depends(get_request_context)):
        reject_action(ctx)

    @router.api_route("/{rest:path}", methods=ACTION_METHODS, include_in_schema=False)
    def invalid_action(rest: str, ctx: RequestContext = Depends(get_request_context)):
        reject_action(ctx)


def reject_action(ctx: RequestContext):
    logger.info("Invalid %s action on %s: /%s", ctx.method, ctx.resource, ctx.path)
    raise MethodNotAllowedError("Invalid action")


def load_or_404(db: Session, model, pk: int, message: str):
    obj = db.get(model, pk)
    if obj is None:
        raise NotFoundError(message)
    return obj


def full_name(user: Optional[models.User]) -> Optional[str]:
    return user.full_name if user is not None else None


def profile_payload(user: models.User) -> Optional[dict]:
    """Role specific profile row with its department name, if the user has one."""
    if user.type == Role.STUDENT.value:
        profile, schema = user.student_profile, schemas.StudentProfileOut
    elif user.type == Role.FACULTY.value:
        profile, schema = user.faculty_profile, schemas.FacultyProfileOut
    else:
        return None
    if profile is None:
        return None
    department = profile.department.name if profile.department else None
    return schemas.to_dict(schema, profile, department_name=department)


def student_summary(user: models.User) -> dict:
    profile = user.student_profile
    return {
        "id": user.id,
        "full_name": user.full_name,
        "email": user.email,
        "roll_number": profile.roll_number if profile else None,
        "department_id": profile.department_id if profile else None,
        "semester": profile.semester if profile else None,
    }
