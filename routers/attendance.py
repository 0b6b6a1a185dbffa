import logging
from datetime import date
from typing import Optional, get_args

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

import aggregates
import auth
import models
import schemas
from database import get_db, transaction
from errors import AuthorizationError, MissingParametersError, NotFoundError, ValidationError
from permissions import authorize, ensure_enrolled, ensure_instructor, find_enrollment, is_student
from request_context import RequestContext, get_request_context, is_blank
from routers.common import add_action_fallback, load_or_404, student_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/attendance", tags=["attendance"])

STATUSES = get_args(schemas.AttendanceStatus)
COURSE_NOT_FOUND = "Course not found"
VIEW_DENIED = "You can only view attendance for courses you teach"


def total_classes(db: Session, course_id: int) -> int:
    """Number of distinct dates attendance was recorded on for the course."""
    return db.query(func.count(func.distinct(models.Attendance.date))).filter(
        models.Attendance.course_id == course_id
    ).scalar()


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")


def student_record(db: Session, course_id: int, student_id: int) -> dict:
    records = db.query(models.Attendance).filter(
        models.Attendance.course_id == course_id,
        models.Attendance.student_id == student_id
    ).order_by(models.Attendance.date.desc()).all()

    counts = {status: 0 for status in STATUSES}
    for record in records:
        counts[record.status] = counts.get(record.status, 0) + 1

    classes = total_classes(db, course_id)
    return {
        "records": [schemas.to_dict(schemas.AttendanceOut, record) for record in records],
        "present_count": counts["present"],
        "absent_count": counts["absent"],
        "late_count": counts["late"],
        "total_classes": classes,
        "attendance_percentage": aggregates.attendance_percentage(counts["present"], classes),
    }


# ---------------------------
# READ
# ---------------------------
@router.get("")
@router.post("")
def course_id_required(current_user: models.User = Depends(auth.get_current_user)):
    raise ValidationError("Course ID is required")


@router.get("/{course_id:int}")
def attendance_summary(course_id: int, db: Session = Depends(get_db),
                       current_user: models.User = Depends(auth.get_current_user)):
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)

    if is_student(current_user):
        ensure_enrolled(db, current_user, course_id)
        data = student_record(db, course_id, current_user.id)
        data["course_id"] = course_id
        return data

    ensure_instructor(current_user, course, VIEW_DENIED)

    rows = db.query(
        models.Attendance.date, models.Attendance.status, func.count(models.Attendance.id)
    ).filter(
        models.Attendance.course_id == course_id
    ).group_by(models.Attendance.date, models.Attendance.status).all()

    by_date = {}
    for day, status, count in rows:
        entry = by_date.setdefault(day, {"date": day, "present": 0, "absent": 0, "late": 0, "total": 0})
        entry[status] = count
        entry["total"] += count

    total_students = db.query(func.count(models.Enrollment.id)).filter(
        models.Enrollment.course_id == course_id
    ).scalar()

    return {
        "course_id": course_id,
        "total_students": total_students,
        "total_classes": len(by_date),
        "dates": [by_date[day] for day in sorted(by_date, reverse=True)],
    }


@router.get("/{course_id:int}/student")
@router.get("/{course_id:int}/student/{student_id:int}")
def student_attendance(course_id: int, student_id: Optional[int] = None,
                       db: Session = Depends(get_db),
                       current_user: models.User = Depends(auth.get_current_user)):
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)

    if is_student(current_user):
        if student_id is not None and student_id != current_user.id:
            raise AuthorizationError("You can only view your own attendance")
        student_id = current_user.id
    else:
        ensure_instructor(current_user, course, VIEW_DENIED)
        if student_id is None:
            raise MissingParametersError(["student_id"])

    if find_enrollment(db, student_id, course_id) is None:
        raise NotFoundError("Student is not enrolled in this course")

    student = db.get(models.User, student_id)
    data = student_record(db, course_id, student_id)
    data["course_id"] = course_id
    data["student"] = student_summary(student)
    return data


@router.get("/{course_id:int}/date")
@router.get("/{course_id:int}/date/{day}")
def attendance_by_date(course_id: int, day: Optional[str] = None,
                       db: Session = Depends(get_db),
                       current_user: models.User = Depends(auth.get_current_user)):
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    on = parse_date(day) if day else models.utcnow().date()

    if is_student(current_user):
        ensure_enrolled(db, current_user, course_id)
        record = db.query(models.Attendance).filter(
            models.Attendance.course_id == course_id,
            models.Attendance.student_id == current_user.id,
            models.Attendance.date == on
        ).first()
        return {
            "course_id": course_id,
            "date": on,
            "record": schemas.to_dict(schemas.AttendanceOut, record) if record else None,
        }

    ensure_instructor(current_user, course, VIEW_DENIED)

    students = db.query(models.User).join(
        models.Enrollment, models.Enrollment.student_id == models.User.id
    ).filter(models.Enrollment.course_id == course_id).order_by(models.User.full_name).all()

    marked = {
        record.student_id: record
        for record in db.query(models.Attendance).filter(
            models.Attendance.course_id == course_id,
            models.Attendance.date == on
        )
    }

    roster, missing = [], []
    for student in students:
        record = marked.get(student.id)
        if record is None:
            missing.append(student_summary(student))
            continue
        data = student_summary(student)
        data.update(attendance_id=record.id, status=record.status, remarks=record.remarks)
        roster.append(data)

    return {"course_id": course_id, "date": on, "attendance": roster, "not_marked": missing}


# ---------------------------
# MARK (batch upsert)
# ---------------------------
@router.post("/{course_id:int}")
def mark_attendance(course_id: int, ctx: RequestContext = Depends(get_request_context),
                    db: Session = Depends(get_db),
                    current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "attendance.mark")
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    ensure_instructor(current_user, course, "You can only mark attendance for courses you teach")
    data = ctx.parse(schemas.AttendanceMark)

    entries = []
    skipped = 0
    for raw in data.attendance_data:
        if not isinstance(raw, dict) or is_blank(raw.get("student_id")) or is_blank(raw.get("status")):
            skipped += 1
            continue
        if raw["status"] not in STATUSES:
            raise ValidationError(f"Invalid attendance status: {raw['status']}")
        entries.append(ctx.parse(schemas.AttendanceEntry, raw))

    enrolled = {
        student_id for (student_id,) in db.query(models.Enrollment.student_id).filter(
            models.Enrollment.course_id == course_id
        )
    }

    inserted = updated = 0
    with transaction(db):
        for entry in entries:
            if entry.student_id not in enrolled:
                skipped += 1
                continue

            record = db.query(models.Attendance).filter(
                models.Attendance.student_id == entry.student_id,
                models.Attendance.course_id == course_id,
                models.Attendance.date == data.date
            ).first()
            if record is None:
                record = models.Attendance(student_id=entry.student_id, course_id=course_id, date=data.date)
                db.add(record)
                db.flush()
                inserted += 1
            else:
                updated += 1
            record.status = entry.status
            record.remarks = entry.remarks
            record.recorded_by = current_user.id

    logger.info("Attendance for course %s on %s: %d inserted, %d updated, %d skipped",
                course_id, data.date, inserted, updated, skipped)
    return {
        "message": "Attendance marked successfully",
        "date": data.date,
        "inserted": inserted,
        "updated": updated,
        "skipped": skipped,
    }


# ---------------------------
# UPDATE
# ---------------------------
@router.put("/{attendance_id:int}")
def update_attendance(attendance_id: int, ctx: RequestContext = Depends(get_request_context),
                      db: Session = Depends(get_db),
                      current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "attendance.update")
    record = load_or_404(db, models.Attendance, attendance_id, "Attendance record not found")
    course = db.get(models.Course, record.course_id)
    ensure_instructor(current_user, course, "You can only update attendance for courses you teach")
    data = ctx.parse(schemas.AttendanceUpdate)

    record.status = data.status
    if data.remarks is not None:
        record.remarks = data.remarks
    record.recorded_by = current_user.id
    db.commit()
    db.refresh(record)
    return {"message": "Attendance updated successfully",
            "attendance": schemas.to_dict(schemas.AttendanceOut, record)}


add_action_fallback(router)
