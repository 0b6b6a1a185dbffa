# tests/test_permissions.py
import pytest

import models
from errors import AuthorizationError
from permissions import (
    PERMISSIONS,
    Role,
    authorize,
    ensure_instructor,
    ensure_self_or_admin,
    teaches,
)


def user(id, type):
    return models.User(id=id, full_name=f"User {id}", email=f"u{id}@college.test", password="x", type=type)


def test_role_values():
    assert Role.values() == ["student", "faculty", "admin"]


def test_every_action_names_a_denial_message():
    for action, permission in PERMISSIONS.items():
        assert permission.roles, action
        assert permission.denied, action


def test_students_cannot_create_courses():
    student = user(1, "student")

    with pytest.raises(AuthorizationError) as exc_info:
        authorize(student, "courses.create")
    assert exc_info.value.status_code == 403
    assert exc_info.value.message == "Students cannot create courses"


def test_only_admin_deletes_courses():
    authorize(user(1, "admin"), "courses.delete")
    with pytest.raises(AuthorizationError):
        authorize(user(2, "faculty"), "courses.delete")


def test_only_students_submit():
    authorize(user(1, "student"), "assignments.submit")
    with pytest.raises(AuthorizationError):
        authorize(user(2, "faculty"), "assignments.submit")


def test_instructor_ownership():
    owner, other, admin = user(1, "faculty"), user(2, "faculty"), user(3, "admin")
    course = models.Course(id=10, code="CS1", name="C", credits=3, semester="1",
                           department="CS", instructor_id=owner.id)

    assert teaches(owner, course)
    assert not teaches(other, course)
    ensure_instructor(owner, course, "nope")
    ensure_instructor(admin, course, "nope")
    with pytest.raises(AuthorizationError) as exc_info:
        ensure_instructor(other, course, "nope")
    assert exc_info.value.message == "nope"
    with pytest.raises(AuthorizationError):
        ensure_instructor(user(4, "student"), course, "nope")


def test_self_or_admin():
    ensure_self_or_admin(user(1, "student"), 1, "denied")
    ensure_self_or_admin(user(2, "admin"), 1, "denied")
    with pytest.raises(AuthorizationError):
        ensure_self_or_admin(user(3, "student"), 1, "denied")
