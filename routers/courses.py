import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

import auth
import models
import schemas
from database import get_db, transaction
from errors import NotFoundError, ValidationError
from permissions import (
    authorize,
    ensure_course_member,
    ensure_instructor,
    find_enrollment,
    is_admin,
    is_faculty,
    is_student,
)
from request_context import RequestContext, get_request_context
from routers.common import add_action_fallback, full_name, load_or_404, student_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/courses", tags=["courses"])

COURSE_NOT_FOUND = "Course not found"

# Rows removed together with a course, children first
COURSE_DEPENDENTS = (
    models.Enrollment,
    models.Attendance,
    models.Assignment,
    models.CourseMaterial,
    models.CourseSchedule,
    models.Notice,
)


def enrolled_count(db: Session, course_id: int) -> int:
    return db.query(func.count(models.Enrollment.id)).filter(
        models.Enrollment.course_id == course_id
    ).scalar()


def course_schedule(db: Session, course_id: int) -> list:
    rows = db.query(models.CourseSchedule).filter(
        models.CourseSchedule.course_id == course_id
    ).order_by(models.CourseSchedule.day, models.CourseSchedule.start_time).all()
    return [schemas.to_dict(schemas.ScheduleOut, row) for row in rows]


def course_details(db: Session, course: models.Course, user: models.User) -> dict:
    data = schemas.to_dict(schemas.CourseOut, course, instructor_name=full_name(course.instructor))

    if is_student(user):
        enrollment = find_enrollment(db, user.id, course.id)
        data["enrolled"] = enrollment is not None
        if enrollment is not None:
            data["grade_point"] = enrollment.grade_point
            data["grade_letter"] = enrollment.grade_letter
            data["enrollment_date"] = enrollment.enrollment_date

    data["schedule"] = course_schedule(db, course.id)
    data["enrolled_students"] = enrolled_count(db, course.id)
    return data


# ---------------------------
# LIST / DETAILS
# ---------------------------
@router.get("")
def list_courses(ctx: RequestContext = Depends(get_request_context),
                 db: Session = Depends(get_db),
                 current_user: models.User = Depends(auth.get_current_user)):
    filters = []
    if ctx.has("department"):
        filters.append(models.Course.department == str(ctx.get("department")).strip())
    if ctx.has("semester"):
        filters.append(models.Course.semester == str(ctx.get("semester")).strip())

    order = (models.Course.semester, models.Course.name)

    if is_student(current_user):
        rows = db.query(models.Course, models.Enrollment).join(
            models.Enrollment, models.Enrollment.course_id == models.Course.id
        ).filter(models.Enrollment.student_id == current_user.id, *filters).order_by(*order).all()
        return [
            schemas.to_dict(
                schemas.CourseOut, course,
                grade_point=enrollment.grade_point,
                grade_letter=enrollment.grade_letter,
                enrollment_date=enrollment.enrollment_date
            )
            for course, enrollment in rows
        ]

    query = db.query(models.Course).filter(*filters)
    if is_faculty(current_user):
        query = query.filter(models.Course.instructor_id == current_user.id)
    return [schemas.to_dict(schemas.CourseOut, course) for course in query.order_by(*order).all()]


@router.get("/{course_id:int}")
def get_course(course_id: int, db: Session = Depends(get_db),
               current_user: models.User = Depends(auth.get_current_user)):
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    return course_details(db, course, current_user)


@router.get("/{course_id:int}/students")
def get_course_students(course_id: int, db: Session = Depends(get_db),
                        current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "courses.view_students")
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    ensure_instructor(current_user, course, "You can only view students for courses you teach")

    rows = db.query(models.User, models.Enrollment).join(
        models.Enrollment, models.Enrollment.student_id == models.User.id
    ).filter(models.Enrollment.course_id == course_id).order_by(models.User.full_name).all()

    students = []
    for user, enrollment in rows:
        data = student_summary(user)
        data.update(
            enrollment_id=enrollment.id,
            grade_point=enrollment.grade_point,
            grade_letter=enrollment.grade_letter,
            enrollment_date=enrollment.enrollment_date
        )
        students.append(data)
    return students


@router.get("/{course_id:int}/materials")
def get_course_materials(course_id: int, db: Session = Depends(get_db),
                         current_user: models.User = Depends(auth.get_current_user)):
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    ensure_course_member(db, current_user, course, "You can only view materials for courses you teach")

    materials = db.query(models.CourseMaterial).filter(
        models.CourseMaterial.course_id == course_id
    ).order_by(models.CourseMaterial.created_at.desc(), models.CourseMaterial.id.desc()).all()
    return [
        schemas.to_dict(schemas.MaterialOut, material, uploaded_by_name=full_name(material.uploader))
        for material in materials
    ]


@router.get("/{course_id:int}/schedule")
def get_schedule(course_id: int, db: Session = Depends(get_db),
                 current_user: models.User = Depends(auth.get_current_user)):
    load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    return course_schedule(db, course_id)


# ---------------------------
# CREATE / ACTIONS
# ---------------------------
@router.post("", status_code=201)
def create_course(ctx: RequestContext = Depends(get_request_context),
                  db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "courses.create")
    data = ctx.parse(schemas.CourseCreate)

    code = data.code.strip()
    if db.query(models.Course).filter(models.Course.code == code).first():
        raise ValidationError("Course code already exists")

    # Faculty own what they create; admin may hand the course to someone
    instructor_id = current_user.id if is_faculty(current_user) else None
    if is_admin(current_user) and data.instructor_id is not None:
        instructor_id = data.instructor_id

    course = models.Course(
        code=code,
        name=data.name.strip(),
        credits=data.credits,
        semester=data.semester.strip(),
        department=data.department.strip(),
        description=data.description,
        instructor_id=instructor_id
    )
    if data.max_students is not None:
        course.max_students = data.max_students

    db.add(course)
    db.commit()
    db.refresh(course)
    logger.info("Course %s (%s) created by user %s", course.id, course.code, current_user.id)
    return course_details(db, course, current_user)


@router.post("/{course_id:int}/enroll", status_code=201)
def enroll_student(course_id: int, ctx: RequestContext = Depends(get_request_context),
                   db: Session = Depends(get_db),
                   current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "courses.enroll")

    if is_student(current_user):
        student_id = current_user.id
    else:
        student_id = ctx.parse(schemas.EnrollRequest).student_id

    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    if not is_student(current_user):
        ensure_instructor(current_user, course, "You can only enroll students in courses you teach")

    student = db.get(models.User, student_id)
    if student is None or not is_student(student):
        raise NotFoundError("Student not found")

    if find_enrollment(db, student_id, course_id):
        raise ValidationError("Student is already enrolled in this course")

    if enrolled_count(db, course_id) >= course.max_students:
        raise ValidationError("Course is full")

    enrollment = models.Enrollment(student_id=student_id, course_id=course_id)
    db.add(enrollment)
    db.commit()
    return {"message": "Student enrolled successfully", "enrollment_id": enrollment.id}


@router.post("/{course_id:int}/materials", status_code=201)
def add_course_material(course_id: int, ctx: RequestContext = Depends(get_request_context),
                        db: Session = Depends(get_db),
                        current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "courses.add_material")
    data = ctx.parse(schemas.MaterialCreate)
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    ensure_instructor(current_user, course, "You can only add materials to courses you teach")

    material = models.CourseMaterial(
        course_id=course_id,
        title=data.title.strip(),
        type=data.type.strip(),
        file_path=data.file_path.strip(),
        description=data.description,
        uploaded_by=current_user.id
    )
    db.add(material)
    db.commit()
    db.refresh(material)
    return schemas.to_dict(schemas.MaterialOut, material, uploaded_by_name=current_user.full_name)


@router.post("/{course_id:int}/schedule", status_code=201)
def add_course_schedule(course_id: int, ctx: RequestContext = Depends(get_request_context),
                        db: Session = Depends(get_db),
                        current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "courses.add_schedule")
    data = ctx.parse(schemas.ScheduleCreate)
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    ensure_instructor(current_user, course, "You can only add schedule to courses you teach")

    slot = models.CourseSchedule(
        course_id=course_id,
        day=data.day.strip(),
        start_time=data.start_time.strip(),
        end_time=data.end_time.strip(),
        room=data.room
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return schemas.to_dict(schemas.ScheduleOut, slot)


# ---------------------------
# UPDATE / DELETE
# ---------------------------
@router.put("/{course_id:int}")
def update_course(course_id: int, ctx: RequestContext = Depends(get_request_context),
                  db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "courses.update")
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    ensure_instructor(current_user, course, "You can only update courses you teach")

    schema = schemas.CourseAdminUpdate if is_admin(current_user) else schemas.CourseUpdate
    changes = ctx.parse(schema).model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationError("No fields to update")

    if "code" in changes and changes["code"] != course.code:
        taken = db.query(models.Course).filter(models.Course.code == changes["code"]).first()
        if taken:
            raise ValidationError("Course code already exists")

    for field, value in changes.items():
        setattr(course, field, value)
    db.commit()
    db.refresh(course)
    return course_details(db, course, current_user)


def delete_course_dependents(db: Session, course_id: int):
    assignment_ids = db.query(models.Assignment.id).filter(models.Assignment.course_id == course_id)
    db.query(models.Submission).filter(
        models.Submission.assignment_id.in_(assignment_ids.scalar_subquery())
    ).delete(synchronize_session=False)

    notice_ids = db.query(models.Notice.id).filter(models.Notice.course_id == course_id)
    for model in (models.NoticeAttachment, models.NoticeRead):
        db.query(model).filter(
            model.notice_id.in_(notice_ids.scalar_subquery())
        ).delete(synchronize_session=False)

    for model in COURSE_DEPENDENTS:
        db.query(model).filter(model.course_id == course_id).delete(synchronize_session=False)


@router.delete("/{course_id:int}")
def delete_course(course_id: int, db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "courses.delete")
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)

    with transaction(db):
        delete_course_dependents(db, course_id)
        db.delete(course)

    logger.info("Course %s deleted by user %s", course_id, current_user.id)
    return {"message": "Course deleted successfully"}


add_action_fallback(router)
