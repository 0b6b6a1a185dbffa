"""
Role based access rules shared by every router.

Each protected action maps to the roles allowed to perform it and the
message returned to everybody else. Ownership (course instructor),
enrollment and self-or-admin checks live here too, so routers only name
the action they are about to perform.
"""

import enum
from typing import FrozenSet, NamedTuple

from sqlalchemy.orm import Session

import models
from errors import AuthorizationError


class Role(str, enum.Enum):
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"

    @classmethod
    def values(cls):
        return [role.value for role in cls]


class Permission(NamedTuple):
    roles: FrozenSet[Role]
    denied: str


STAFF = frozenset({Role.FACULTY, Role.ADMIN})
ADMIN_ONLY = frozenset({Role.ADMIN})
STUDENT_ONLY = frozenset({Role.STUDENT})
EVERYONE = frozenset(Role)

PERMISSIONS = {
    "auth.register": Permission(ADMIN_ONLY, "Only administrators can register new users"),
    "users.set_status": Permission(ADMIN_ONLY, "Only administrators can change account status"),
    "courses.create": Permission(STAFF, "Students cannot create courses"),
    "courses.update": Permission(STAFF, "Students cannot update courses"),
    "courses.delete": Permission(ADMIN_ONLY, "Only administrators can delete courses"),
    "courses.enroll": Permission(EVERYONE, "You cannot enroll students"),
    "courses.view_students": Permission(STAFF, "Students cannot view the full student list"),
    "courses.add_material": Permission(STAFF, "Students cannot add course materials"),
    "courses.add_schedule": Permission(STAFF, "Students cannot add course schedule"),
    "assignments.create": Permission(STAFF, "Students cannot create assignments"),
    "assignments.update": Permission(STAFF, "Students cannot update assignments"),
    "assignments.delete": Permission(STAFF, "Students cannot delete assignments"),
    "assignments.view_submissions": Permission(STAFF, "Students cannot view all submissions"),
    "assignments.submit": Permission(STUDENT_ONLY, "Only students can submit assignments"),
    "assignments.grade": Permission(STAFF, "Students cannot grade submissions"),
    "attendance.mark": Permission(STAFF, "Students cannot mark attendance"),
    "attendance.update": Permission(STAFF, "Students cannot update attendance"),
    "grades.add": Permission(STAFF, "Students cannot add grades"),
    "grades.update": Permission(STAFF, "Students cannot update grades"),
    "notices.create": Permission(STAFF, "Students cannot create notices"),
    "notices.update": Permission(STAFF, "Students cannot update notices"),
    "notices.delete": Permission(STAFF, "Students cannot delete notices"),
}


def role_of(user: models.User) -> Role:
    return Role(user.type)


def is_admin(user: models.User) -> bool:
    return role_of(user) is Role.ADMIN


def is_student(user: models.User) -> bool:
    return role_of(user) is Role.STUDENT


def is_faculty(user: models.User) -> bool:
    return role_of(user) is Role.FACULTY


def authorize(user: models.User, action: str):
    permission = PERMISSIONS[action]
    if role_of(user) not in permission.roles:
        raise AuthorizationError(permission.denied)


def teaches(user: models.User, course: models.Course) -> bool:
    return course is not None and course.instructor_id == user.id


def ensure_instructor(user: models.User, course: models.Course, message: str):
    """Faculty must own the course; admin always passes; students never do."""
    if is_admin(user):
        return
    if is_faculty(user) and teaches(user, course):
        return
    raise AuthorizationError(message)


def ensure_self_or_admin(user: models.User, target_id: int, message: str):
    if user.id != target_id and not is_admin(user):
        raise AuthorizationError(message)


def find_enrollment(db: Session, student_id: int, course_id: int):
    return db.query(models.Enrollment).filter(
        models.Enrollment.student_id == student_id,
        models.Enrollment.course_id == course_id
    ).first()


def is_enrolled(db: Session, student_id: int, course_id: int) -> bool:
    return find_enrollment(db, student_id, course_id) is not None


def ensure_enrolled(db: Session, user: models.User, course_id: int,
                    message: str = "You are not enrolled in this course"):
    if not is_enrolled(db, user.id, course_id):
        raise AuthorizationError(message)


def ensure_course_member(db: Session, user: models.User, course: models.Course, message: str):
    """Enrolled students, the instructor and admins may look inside a course."""
    if is_student(user):
        ensure_enrolled(db, user, course.id)
    else:
        ensure_instructor(user, course, message)


def department_of(user: models.User):
    profile = user.student_profile if is_student(user) else user.faculty_profile
    return profile.department_id if profile else None
