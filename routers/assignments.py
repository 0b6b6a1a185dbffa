import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

import auth
import config
import models
import schemas
from database import get_db, transaction
from errors import AuthorizationError, NotFoundError, ValidationError
from permissions import (
    authorize,
    ensure_course_member,
    ensure_enrolled,
    ensure_instructor,
    is_admin,
    is_faculty,
    is_student,
    teaches,
)
from request_context import RequestContext, get_request_context
from routers.common import add_action_fallback, full_name, load_or_404, student_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assignments", tags=["assignments"])

ASSIGNMENT_NOT_FOUND = "Assignment not found"


def _ensure_owner(user: models.User, assignment: models.Assignment, message: str):
    if is_admin(user):
        return
    if is_faculty(user) and (teaches(user, assignment.course) or assignment.created_by == user.id):
        return
    raise AuthorizationError(message)


def _ensure_can_view(db: Session, user: models.User, assignment: models.Assignment):
    if is_student(user):
        ensure_enrolled(db, user, assignment.course_id)
    else:
        _ensure_owner(user, assignment, "You can only view assignments for courses you teach")


def _scoped(db: Session, user: models.User):
    """Assignments visible to the user: enrolled courses, or created/taught ones."""
    query = db.query(models.Assignment).join(
        models.Course, models.Course.id == models.Assignment.course_id
    )
    if is_student(user):
        query = query.join(
            models.Enrollment, models.Enrollment.course_id == models.Assignment.course_id
        ).filter(models.Enrollment.student_id == user.id)
    elif is_faculty(user):
        query = query.filter(or_(
            models.Assignment.created_by == user.id,
            models.Course.instructor_id == user.id
        ))
    return query


def _find_submission(db: Session, assignment_id: int, student_id: int):
    return db.query(models.Submission).filter(
        models.Submission.assignment_id == assignment_id,
        models.Submission.student_id == student_id
    ).first()


def _assignment_payload(assignment: models.Assignment) -> dict:
    course = assignment.course
    return schemas.to_dict(
        schemas.AssignmentOut, assignment,
        course_code=course.code if course else None,
        course_name=course.name if course else None,
        created_by_name=full_name(assignment.creator)
    )


def _with_status(db: Session, user: models.User, assignment: models.Assignment) -> dict:
    data = _assignment_payload(assignment)
    if is_student(user):
        submission = _find_submission(db, assignment.id, user.id)
        data["submission_status"] = submission.status if submission else "not submitted"
        data["score"] = submission.score if submission else None
        data["submitted_date"] = submission.submitted_date if submission else None
    else:
        counts = db.query(models.Submission.status, func.count(models.Submission.id)).filter(
            models.Submission.assignment_id == assignment.id
        ).group_by(models.Submission.status).all()
        counts = dict(counts)
        data["submission_count"] = sum(counts.values())
        data["graded_count"] = counts.get("graded", 0)
    return data


def _submission_stats(db: Session, assignment: models.Assignment) -> dict:
    submissions = db.query(models.Submission).filter(
        models.Submission.assignment_id == assignment.id
    ).all()
    total_students = db.query(func.count(models.Enrollment.id)).filter(
        models.Enrollment.course_id == assignment.course_id
    ).scalar()
    scores = [s.score for s in submissions if s.score is not None]
    return {
        "total_students": total_students,
        "submitted": len(submissions),
        "late": sum(1 for s in submissions if s.status == "late"),
        "graded": sum(1 for s in submissions if s.status == "graded"),
        "not_submitted": max(total_students - len(submissions), 0),
        "average_score": round(sum(scores) / len(scores), 2) if scores else None,
    }


# ---------------------------
# READ
# ---------------------------
@router.get("")
def list_assignments(ctx: RequestContext = Depends(get_request_context),
                     db: Session = Depends(get_db),
                     current_user: models.User = Depends(auth.get_current_user)):
    if ctx.has("course_id"):
        course_id = ctx.int_param("course_id")
        course = load_or_404(db, models.Course, course_id, "Course not found")
        ensure_course_member(db, current_user, course, "You can only view assignments for courses you teach")
        assignments = db.query(models.Assignment).filter(
            models.Assignment.course_id == course_id
        ).order_by(models.Assignment.due_date).all()
    else:
        assignments = _scoped(db, current_user).order_by(models.Assignment.due_date).all()

    return [_with_status(db, current_user, assignment) for assignment in assignments]


@router.get("/upcoming")
def upcoming_assignments(db: Session = Depends(get_db),
                         current_user: models.User = Depends(auth.get_current_user)):
    assignments = _scoped(db, current_user).filter(
        models.Assignment.due_date >= models.utcnow()
    ).order_by(models.Assignment.due_date).limit(config.UPCOMING_LIMIT).all()
    return [_with_status(db, current_user, assignment) for assignment in assignments]


@router.get("/{assignment_id:int}")
def get_assignment(assignment_id: int, db: Session = Depends(get_db),
                   current_user: models.User = Depends(auth.get_current_user)):
    assignment = load_or_404(db, models.Assignment, assignment_id, ASSIGNMENT_NOT_FOUND)
    _ensure_can_view(db, current_user, assignment)

    data = _assignment_payload(assignment)
    if is_student(current_user):
        submission = _find_submission(db, assignment.id, current_user.id)
        data["submission"] = schemas.to_dict(schemas.SubmissionOut, submission) if submission else None
    else:
        data["submission_stats"] = _submission_stats(db, assignment)
    return data


@router.get("/{assignment_id:int}/submissions")
def get_submissions(assignment_id: int, db: Session = Depends(get_db),
                    current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "assignments.view_submissions")
    assignment = load_or_404(db, models.Assignment, assignment_id, ASSIGNMENT_NOT_FOUND)
    _ensure_owner(current_user, assignment, "You can only view submissions for courses you teach")

    enrolled = db.query(models.User).join(
        models.Enrollment, models.Enrollment.student_id == models.User.id
    ).filter(models.Enrollment.course_id == assignment.course_id).order_by(models.User.full_name).all()

    by_student = {
        s.student_id: s
        for s in db.query(models.Submission).filter(models.Submission.assignment_id == assignment_id)
    }

    submissions, missing = [], []
    for student in enrolled:
        submission = by_student.get(student.id)
        if submission is None:
            missing.append(student_summary(student))
            continue
        data = schemas.to_dict(schemas.SubmissionOut, submission)
        data["student"] = student_summary(student)
        submissions.append(data)

    return {
        "assignment": _assignment_payload(assignment),
        "submissions": submissions,
        "missing_submissions": missing,
    }


# ---------------------------
# CREATE / SUBMIT / GRADE
# ---------------------------
@router.post("", status_code=201)
def create_assignment(ctx: RequestContext = Depends(get_request_context),
                      db: Session = Depends(get_db),
                      current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "assignments.create")
    data = ctx.parse(schemas.AssignmentCreate)

    course = load_or_404(db, models.Course, data.course_id, "Course not found")
    ensure_instructor(current_user, course, "You can only create assignments for courses you teach")

    if data.total_marks <= 0:
        raise ValidationError("Total marks must be greater than zero")

    assignment = models.Assignment(
        course_id=course.id,
        title=data.title.strip(),
        description=data.description,
        due_date=models.as_naive_utc(data.due_date),
        total_marks=data.total_marks,
        weightage=data.weightage or 0,
        created_by=current_user.id
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("Assignment %s created for course %s", assignment.id, course.id)
    return _assignment_payload(assignment)


@router.post("/{assignment_id:int}/submit", status_code=201)
def submit_assignment(assignment_id: int, response: Response,
                      ctx: RequestContext = Depends(get_request_context),
                      db: Session = Depends(get_db),
                      current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "assignments.submit")
    assignment = load_or_404(db, models.Assignment, assignment_id, ASSIGNMENT_NOT_FOUND)
    ensure_enrolled(db, current_user, assignment.course_id)
    data = ctx.parse(schemas.SubmissionCreate)

    now = models.utcnow()
    status = "late" if now > assignment.due_date else "submitted"

    submission = _find_submission(db, assignment_id, current_user.id)
    if submission is not None and submission.status == "graded":
        raise ValidationError("Submission has already been graded")

    if submission is None:
        submission = models.Submission(assignment_id=assignment_id, student_id=current_user.id)
        db.add(submission)
        message = "Assignment submitted successfully"
    else:
        response.status_code = 200
        message = "Submission updated successfully"

    submission.file_path = data.file_path.strip()
    submission.submitted_date = now
    submission.status = status
    db.commit()
    db.refresh(submission)

    return {"message": message, "submission": schemas.to_dict(schemas.SubmissionOut, submission)}


@router.post("/{assignment_id:int}/grade")
def grade_submission(assignment_id: int, ctx: RequestContext = Depends(get_request_context),
                     db: Session = Depends(get_db),
                     current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "assignments.grade")
    assignment = load_or_404(db, models.Assignment, assignment_id, ASSIGNMENT_NOT_FOUND)
    _ensure_owner(current_user, assignment, "You can only grade assignments for courses you teach")
    data = ctx.parse(schemas.GradeSubmission)

    if not 0 <= data.score <= assignment.total_marks:
        raise ValidationError(f"Score must be between 0 and {assignment.total_marks}")

    submission = _find_submission(db, assignment_id, data.student_id)
    if submission is None:
        raise NotFoundError("Submission not found")

    submission.score = data.score
    submission.feedback = data.feedback
    submission.status = "graded"
    submission.graded_by = current_user.id
    submission.graded_at = models.utcnow()
    db.commit()
    db.refresh(submission)

    return {"message": "Submission graded successfully",
            "submission": schemas.to_dict(schemas.SubmissionOut, submission)}


# ---------------------------
# UPDATE / DELETE
# ---------------------------
@router.put("/{assignment_id:int}")
def update_assignment(assignment_id: int, ctx: RequestContext = Depends(get_request_context),
                      db: Session = Depends(get_db),
                      current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "assignments.update")
    assignment = load_or_404(db, models.Assignment, assignment_id, ASSIGNMENT_NOT_FOUND)
    _ensure_owner(current_user, assignment, "You can only update assignments for courses you teach")

    changes = ctx.parse(schemas.AssignmentUpdate).model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationError("No fields to update")
    if "total_marks" in changes and changes["total_marks"] <= 0:
        raise ValidationError("Total marks must be greater than zero")
    if "due_date" in changes:
        changes["due_date"] = models.as_naive_utc(changes["due_date"])

    for field, value in changes.items():
        setattr(assignment, field, value)
    db.commit()
    db.refresh(assignment)
    return _assignment_payload(assignment)


@router.delete("/{assignment_id:int}")
def delete_assignment(assignment_id: int, db: Session = Depends(get_db),
                      current_user: models.User = Depends(auth.get_current_user)):
    authorize(current_user, "assignments.delete")
    assignment = load_or_404(db, models.Assignment, assignment_id, ASSIGNMENT_NOT_FOUND)
    _ensure_owner(current_user, assignment, "You can only delete assignments for courses you teach")

    with transaction(db):
        db.query(models.Submission).filter(
            models.Submission.assignment_id == assignment_id
        ).delete(synchronize_session=False)
        db.delete(assignment)

    logger.info("Assignment %s deleted by user %s", assignment_id, current_user.id)
    return {"message": "Assignment deleted successfully"}


add_action_fallback(router)
