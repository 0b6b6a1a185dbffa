import logging
from collections import OrderedDict

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

import aggregates
import auth
import config
import models
import schemas
from database import get_db, transaction
from errors import AuthorizationError, NotFoundError, ValidationError
from permissions import (
    authorize,
    ensure_instructor,
    find_enrollment,
    is_faculty,
    is_student,
)
from request_context import RequestContext, get_request_context, is_blank
from routers.common import add_action_fallback, load_or_404, student_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/grades", tags=["grades"])

COURSE_NOT_FOUND = "Course not found"
NOT_ENROLLED = "Student is not enrolled in this course"


def _load_student(db: Session, student_id: int) -> models.User:
    student = db.get(models.User, student_id)
    if student is None or not is_student(student):
        raise NotFoundError("Student not found")
    return student


def _ensure_own_grades(user: models.User, student_id: int):
    if is_student(user) and user.id != student_id:
        raise AuthorizationError("You can only view your own grades")


def transcript(db: Session, student: models.User) -> dict:
    rows = db.query(models.Enrollment, models.Course).join(
        models.Course, models.Course.id == models.Enrollment.course_id
    ).filter(
        models.Enrollment.student_id == student.id
    ).order_by(models.Course.semester, models.Course.code).all()

    courses = []
    semesters = OrderedDict()
    for enrollment, course in rows:
        courses.append({
            "enrollment_id": enrollment.id,
            "course_id": course.id,
            "code": course.code,
            "name": course.name,
            "credits": course.credits,
            "semester": course.semester,
            "grade_point": enrollment.grade_point,
            "grade_letter": enrollment.grade_letter,
            "remarks": enrollment.remarks,
        })
        semesters.setdefault(course.semester, []).append((course.credits, enrollment.grade_point))

    gpa, total_credits = aggregates.compute_gpa(
        (course.credits, enrollment.grade_point) for enrollment, course in rows
    )
    semester_gpa = []
    for semester, pairs in semesters.items():
        value, credits = aggregates.compute_gpa(pairs)
        semester_gpa.append({"semester": semester, "gpa": value, "credits": credits})

    return {
        "student": student_summary(student),
        "courses": courses,
        "gpa": gpa,
        "total_credits": total_credits,
        "semesters": semester_gpa,
    }


def course_breakdown(db: Session, student: models.User, course: models.Course) -> dict:
    """One student's standing in one course: grade, assignments, attendance."""
    enrollment = find_enrollment(db, student.id, course.id)
    if enrollment is None:
        raise NotFoundError(NOT_ENROLLED)

    rows = db.query(models.Assignment, models.Submission).outerjoin(
        models.Submission,
        (models.Submission.assignment_id == models.Assignment.id)
        & (models.Submission.student_id == student.id)
    ).filter(models.Assignment.course_id == course.id).order_by(models.Assignment.due_date).all()

    assignments = []
    for assignment, submission in rows:
        score = submission.score if submission else None
        percentage = aggregates.score_percentage(score, assignment.total_marks)
        assignments.append({
            "assignment_id": assignment.id,
            "title": assignment.title,
            "due_date": assignment.due_date,
            "total_marks": assignment.total_marks,
            "weightage": assignment.weightage,
            "status": submission.status if submission else "not submitted",
            "score": score,
            "percentage": round(percentage, 2) if percentage is not None else None,
        })

    total_weightage, weighted = aggregates.weighted_score(
        (submission.score if submission else None, assignment.total_marks, assignment.weightage)
        for assignment, submission in rows
    )

    present = db.query(func.count(models.Attendance.id)).filter(
        models.Attendance.course_id == course.id,
        models.Attendance.student_id == student.id,
        models.Attendance.status == "present"
    ).scalar()
    classes = db.query(func.count(func.distinct(models.Attendance.date))).filter(
        models.Attendance.course_id == course.id
    ).scalar()

    return {
        "student": student_summary(student),
        "course": schemas.to_dict(schemas.CourseOut, course),
        "enrollment": schemas.to_dict(schemas.EnrollmentOut, enrollment),
        "assignments": assignments,
        "attendance": {
            "present_count": present,
            "total_classes": classes,
            "attendance_percentage": aggregates.attendance_percentage(present, classes),
        },
        "total_weightage": total_weightage,
        "weighted_score": weighted,
    }


def course_overview(db: Session, course: models.Course) -> dict:
    enrollments = db.query(models.Enrollment).filter(models.Enrollment.course_id == course.id).all()
    graded = [e.grade_point for e in enrollments if e.grade_point is not None]
    return {
        "course_id": course.id,
        "code": course.code,
        "name": course.name,
        "semester": course.semester,
        "total_students": len(enrollments),
        "graded_students": len(graded),
        "average_grade_point": round(sum(graded) / len(graded), 2) if graded else None,
        "grade_distribution": aggregates.grade_distribution(e.grade_letter for e in enrollments),
    }


# ---------------------------
# READ
# ---------------------------
@router.get("")
def grades_overview(db: Session = Depends(get_db),
                    current_user: models.User = Depends(auth.get_current_user)):
    if is_student(current_user):
        return transcript(db, current_user)

    query = db.query(models.Course)
    if is_faculty(current_user):
        query = query.filter(models.Course.instructor_id == current_user.id)
    courses = query.order_by(models.Course.semester, models.Course.code).all()
    return {"courses": [course_overview(db, course) for course in courses]}


@router.get("/course/{course_id:int}")
def course_grades(course_id: int, db: Session = Depends(get_db),
                  current_user: models.User = Depends(auth.get_current_user)):
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)

    if is_student(current_user):
        if find_enrollment(db, current_user.id, course_id) is None:
            raise AuthorizationError("You are not enrolled in this course")
        return course_breakdown(db, current_user, course)

    ensure_instructor(current_user, course, "You can only view grades for courses you teach")

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
            remarks=enrollment.remarks
        )
        students.append(data)

    stats = db.query(
        models.Assignment,
        func.count(models.Submission.id),
        func.avg(models.Submission.score)
    ).outerjoin(
        models.Submission, models.Submission.assignment_id == models.Assignment.id
    ).filter(
        models.Assignment.course_id == course_id
    ).group_by(models.Assignment.id).order_by(models.Assignment.due_date).all()

    assignments = [
        {
            "assignment_id": assignment.id,
            "title": assignment.title,
            "total_marks": assignment.total_marks,
            "weightage": assignment.weightage,
            "submissions": count,
            "average_score": round(average, 2) if average is not None else None,
        }
        for assignment, count, average in stats
    ]

    data = course_overview(db, course)
    data["students"] = students
    data["assignments"] = assignments
    return data


@router.get("/{student_id:int}")
def student_grades(student_id: int, db: Session = Depends(get_db),
                   current_user: models.User = Depends(auth.get_current_user)):
    _ensure_own_grades(current_user, student_id)
    student = _load_student(db, student_id)
    return transcript(db, student)


@router.get("/{student_id:int}/{course_id:int}")
def student_course_grades(student_id: int, course_id: int, db: Session = Depends(get_db),
                          current_user: models.User = Depends(auth.get_current_user)):
    _ensure_own_grades(current_user, student_id)
    student = _load_student(db, student_id)
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    if not is_student(current_user):
        ensure_instructor(current_user, course, "You can only view grades for courses you teach")
    return course_breakdown(db, student, course)


# ---------------------------
# WRITE
# ---------------------------
def _apply_grade(enrollment: models.Enrollment, entry, user: models.User):
    enrollment.grade_point = entry.grade_point
    enrollment.grade_letter = entry.grade_letter.strip().upper()
    enrollment.remarks = entry.remarks
    enrollment.updated_at = models.utcnow()
    enrollment.updated_by = user.id


def _check_grade_point(value: float):
    if not 0 <= value <= config.MAX_GRADE_POINT:
        raise ValidationError(f"Grade point must be between 0 and {config.MAX_GRADE_POINT}")


@router.post("/{course_id:int}")
def add_grades(course_id: int, ctx: RequestContext = Depends(get_request_context),
               db: Session = Depends(get_db),
               current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "grades.add")
    course = load_or_404(db, models.Course, course_id, COURSE_NOT_FOUND)
    ensure_instructor(current_user, course, "You can only add grades for courses you teach")
    data = ctx.parse(schemas.GradesBatch)

    updated = 0
    errors = []
    with transaction(db):
        for index, raw in enumerate(data.grades_data):
            student_id = raw.get("student_id") if isinstance(raw, dict) else None
            if not isinstance(raw, dict) or any(
                is_blank(raw.get(name)) for name in ("student_id", "grade_point", "grade_letter")
            ):
                errors.append({"index": index, "student_id": student_id,
                               "error": "Missing required fields"})
                continue

            try:
                entry = ctx.parse(schemas.GradeEntry, raw)
                _check_grade_point(entry.grade_point)
            except ValidationError as exc:
                errors.append({"index": index, "student_id": student_id, "error": exc.message})
                continue

            enrollment = find_enrollment(db, entry.student_id, course_id)
            if enrollment is None:
                errors.append({"index": index, "student_id": entry.student_id, "error": NOT_ENROLLED})
                continue

            _apply_grade(enrollment, entry, current_user)
            updated += 1

    logger.info("Grades for course %s: %d updated, %d rejected", course_id, updated, len(errors))
    return {"message": "Grades processed", "updated": updated, "errors": errors}


@router.put("/{enrollment_id:int}")
def update_grade(enrollment_id: int, ctx: RequestContext = Depends(get_request_context),
                 db: Session = Depends(get_db),
                 current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "grades.update")
    enrollment = load_or_404(db, models.Enrollment, enrollment_id, "Enrollment not found")
    ensure_instructor(current_user, enrollment.course, "You can only update grades for courses you teach")
    entry = ctx.parse(schemas.GradeUpdate)
    _check_grade_point(entry.grade_point)

    _apply_grade(enrollment, entry, current_user)
    db.commit()
    db.refresh(enrollment)
    return {"message": "Grade updated successfully",
            "enrollment": schemas.to_dict(schemas.EnrollmentOut, enrollment)}


add_action_fallback(router)
