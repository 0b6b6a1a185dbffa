# tests/conftest.py
import itertools
import os
from datetime import timedelta

# Point the app at a private in-memory database before anything imports config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient

import auth
import main
import models
from database import Base, SessionLocal, engine

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(main.app, raise_server_exceptions=False)


@pytest.fixture
def department(db):
    dept = models.Department(name="Computer Science", code="CS")
    db.add(dept)
    db.commit()
    return dept


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make_user(type="student", email=None, password=PASSWORD, full_name=None,
                   department_id=None, status="active"):
        n = next(counter)
        user = models.User(
            full_name=full_name or f"{type.title()} {n}",
            email=email or f"{type}{n}@college.test",
            password=auth.hash_password(password),
            type=type,
            status=status
        )
        db.add(user)
        db.flush()
        if type == "student":
            db.add(models.StudentProfile(user_id=user.id, roll_number=f"R{n:03d}",
                                         department_id=department_id, semester=1))
        elif type == "faculty":
            db.add(models.FacultyProfile(user_id=user.id, department_id=department_id,
                                         designation="Lecturer"))
        db.commit()
        return user

    return _make_user


@pytest.fixture
def headers_for(db):
    def _headers_for(user, expires_in=3600):
        session = models.UserSession(
            user_id=user.id,
            token=auth.create_session_token(),
            expires_at=models.utcnow() + timedelta(seconds=expires_in)
        )
        db.add(session)
        db.commit()
        return {"Authorization": f"Bearer {session.token}"}

    return _headers_for


@pytest.fixture
def make_course(db):
    counter = itertools.count(1)

    def _make_course(instructor=None, credits=3, semester="1", max_students=60, **fields):
        n = next(counter)
        course = models.Course(
            code=fields.pop("code", f"CS{100 + n}"),
            name=fields.pop("name", f"Course {n}"),
            credits=credits,
            semester=semester,
            department=fields.pop("department", "Computer Science"),
            instructor_id=instructor.id if instructor else None,
            max_students=max_students,
            **fields
        )
        db.add(course)
        db.commit()
        return course

    return _make_course


@pytest.fixture
def enroll(db):
    def _enroll(student, course, grade_point=None, grade_letter=None):
        enrollment = models.Enrollment(student_id=student.id, course_id=course.id,
                                       grade_point=grade_point, grade_letter=grade_letter)
        db.add(enrollment)
        db.commit()
        return enrollment

    return _enroll
