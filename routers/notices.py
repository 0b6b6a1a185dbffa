import logging

from fastapi import APIRouter, Depends
from sqlalchemy import and_, false, func, or_
from sqlalchemy.orm import Session

import auth
import models
import schemas
from database import get_db, transaction
from errors import AuthorizationError, ValidationError
from permissions import (
    authorize,
    department_of,
    ensure_instructor,
    is_admin,
    is_enrolled,
    is_faculty,
    is_student,
    teaches,
)
from request_context import RequestContext, get_request_context, is_blank
from routers.common import add_action_fallback, full_name, load_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notices", tags=["notices"])

NOTICE_TYPES = ("general", "course", "department")
NOTICE_NOT_FOUND = "Notice not found"
NO_ACCESS = "You do not have access to this notice"
TRUE_VALUES = (True, 1, "1", "true", "yes", "on")


def _notice_payload(notice: models.Notice) -> dict:
    return schemas.to_dict(
        schemas.NoticeOut, notice,
        created_by_name=full_name(notice.creator),
        course_name=notice.course.name if notice.course else None,
        course_code=notice.course.code if notice.course else None,
        department_name=notice.department.name if notice.department else None
    )


def _with_attachments(notice: models.Notice) -> dict:
    data = _notice_payload(notice)
    data["attachments"] = [schemas.to_dict(schemas.AttachmentOut, a) for a in notice.attachments]
    return data


def _audience_clause(db: Session, student: models.User):
    """General notices, plus the student's department and enrolled courses."""
    course_ids = db.query(models.Enrollment.course_id).filter(
        models.Enrollment.student_id == student.id
    )
    department_id = department_of(student)

    return or_(
        models.Notice.type == "general",
        and_(models.Notice.type == "department", models.Notice.department_id == department_id)
        if department_id is not None else false(),
        and_(models.Notice.type == "course", models.Notice.course_id.in_(course_ids.scalar_subquery())),
    )


def _ensure_can_read(db: Session, user: models.User, notice: models.Notice):
    if is_admin(user) or notice.created_by == user.id:
        return

    if notice.type == "course" and notice.course_id:
        allowed = (
            is_enrolled(db, user.id, notice.course_id) if is_student(user)
            else teaches(user, notice.course)
        )
        if not allowed:
            raise AuthorizationError(NO_ACCESS)

    if notice.type == "department" and notice.department_id:
        if department_of(user) != notice.department_id:
            raise AuthorizationError(NO_ACCESS)


def _ensure_author(user: models.User, notice: models.Notice, message: str):
    if notice.created_by != user.id and not is_admin(user):
        raise AuthorizationError(message)


def _parse_attachments(ctx: RequestContext, attachments) -> list:
    """Entries without a file path or name are skipped; the rest must validate."""
    parsed = []
    for raw in attachments or []:
        if not isinstance(raw, dict) or is_blank(raw.get("file_path")) or is_blank(raw.get("file_name")):
            continue
        parsed.append(ctx.parse(schemas.AttachmentIn, raw))
    return parsed


def _add_attachments(db: Session, notice_id: int, attachments: list):
    for attachment in attachments:
        db.add(models.NoticeAttachment(
            notice_id=notice_id,
            file_path=attachment.file_path,
            file_name=attachment.file_name,
            file_type=attachment.file_type
        ))


# ---------------------------
# LIST / DETAILS
# ---------------------------
@router.get("")
def list_notices(ctx: RequestContext = Depends(get_request_context),
                 db: Session = Depends(get_db),
                 current_user: models.User = Depends(auth.get_current_user)):
    query = db.query(models.Notice)

    if ctx.has("type"):
        query = query.filter(models.Notice.type == ctx.get("type"))

    course_id = ctx.int_param("course_id")
    if course_id is not None:
        query = query.filter(models.Notice.course_id == course_id)
        if is_student(current_user) and not is_enrolled(db, current_user.id, course_id):
            raise AuthorizationError("You are not enrolled in this course")
        if is_faculty(current_user):
            course = db.get(models.Course, course_id)
            if not teaches(current_user, course):
                raise AuthorizationError("You do not teach this course")

    department_id = ctx.int_param("department_id")
    if department_id is not None:
        query = query.filter(models.Notice.department_id == department_id)
        if not is_admin(current_user) and department_of(current_user) != department_id:
            raise AuthorizationError("You do not belong to this department")

    if is_student(current_user):
        query = query.filter(_audience_clause(db, current_user))

    notices = query.order_by(models.Notice.created_at.desc(), models.Notice.id.desc()).all()
    return [_notice_payload(notice) for notice in notices]


@router.get("/{notice_id:int}")
def get_notice(notice_id: int, db: Session = Depends(get_db),
               current_user: models.User = Depends(auth.get_current_user)):
    notice = load_or_404(db, models.Notice, notice_id, NOTICE_NOT_FOUND)
    _ensure_can_read(db, current_user, notice)

    seen = db.query(models.NoticeRead).filter(
        models.NoticeRead.notice_id == notice_id,
        models.NoticeRead.user_id == current_user.id
    ).first()
    if seen is None:
        db.add(models.NoticeRead(notice_id=notice_id, user_id=current_user.id))
        db.commit()

    data = _with_attachments(notice)
    data["read_count"] = db.query(func.count(models.NoticeRead.id)).filter(
        models.NoticeRead.notice_id == notice_id
    ).scalar()
    return data


# ---------------------------
# CREATE
# ---------------------------
@router.post("", status_code=201)
def create_notice(ctx: RequestContext = Depends(get_request_context),
                  db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "notices.create")
    data = ctx.parse(schemas.NoticeCreate)

    if data.type not in NOTICE_TYPES:
        raise ValidationError("Invalid notice type")

    course_id = department_id = None
    if data.type == "course":
        if data.course_id is None:
            raise ValidationError("Course ID is required for course notices")
        course = load_or_404(db, models.Course, data.course_id, "Course not found")
        ensure_instructor(current_user, course, "You can only create notices for courses you teach")
        course_id = course.id
    elif data.type == "department":
        if data.department_id is None:
            raise ValidationError("Department ID is required for department notices")
        department = load_or_404(db, models.Department, data.department_id, "Department not found")
        if not is_admin(current_user) and department_of(current_user) != department.id:
            raise AuthorizationError("You can only create notices for your department")
        department_id = department.id

    attachments = _parse_attachments(ctx, data.attachments)
    with transaction(db):
        notice = models.Notice(
            title=data.title.strip(),
            content=data.content,
            type=data.type,
            course_id=course_id,
            department_id=department_id,
            priority=data.priority or "normal",
            expiry_date=data.expiry_date,
            created_by=current_user.id
        )
        db.add(notice)
        db.flush()
        _add_attachments(db, notice.id, attachments)

    db.refresh(notice)
    logger.info("Notice %s (%s) created by user %s", notice.id, notice.type, current_user.id)
    return _with_attachments(notice)


# ---------------------------
# UPDATE / DELETE
# ---------------------------
@router.put("/{notice_id:int}")
def update_notice(notice_id: int, ctx: RequestContext = Depends(get_request_context),
                  db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "notices.update")
    notice = load_or_404(db, models.Notice, notice_id, NOTICE_NOT_FOUND)
    _ensure_author(current_user, notice, "You can only update notices you created")

    changes = ctx.parse(schemas.NoticeUpdate).model_dump(exclude_unset=True, exclude_none=True)
    attachments = ctx.get("attachments")
    if not isinstance(attachments, list):
        attachments = None
    if not changes and attachments is None:
        raise ValidationError("No fields to update")
    if attachments is not None:
        attachments = _parse_attachments(ctx, attachments)

    with transaction(db):
        for field, value in changes.items():
            setattr(notice, field, value)

        if attachments is not None:
            if ctx.get("replace_attachments") in TRUE_VALUES:
                db.query(models.NoticeAttachment).filter(
                    models.NoticeAttachment.notice_id == notice_id
                ).delete(synchronize_session=False)
            _add_attachments(db, notice_id, attachments)

    db.refresh(notice)
    return _with_attachments(notice)


@router.delete("/{notice_id:int}")
def delete_notice(notice_id: int, db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "notices.delete")
    notice = load_or_404(db, models.Notice, notice_id, NOTICE_NOT_FOUND)
    _ensure_author(current_user, notice, "You can only delete notices you created")

    with transaction(db):
        db.query(models.NoticeAttachment).filter(
            models.NoticeAttachment.notice_id == notice_id
        ).delete(synchronize_session=False)
        db.query(models.NoticeRead).filter(
            models.NoticeRead.notice_id == notice_id
        ).delete(synchronize_session=False)
        db.delete(notice)

    logger.info("Notice %s deleted by user %s", notice_id, current_user.id)
    return {"message": "Notice deleted successfully"}


add_action_fallback(router)
