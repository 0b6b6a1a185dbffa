# tests/test_assignments.py
from datetime import timedelta

import pytest

import models


@pytest.fixture
def setup(db, make_user, make_course, enroll):
    owner = make_user("faculty")
    student = make_user("student")
    course = make_course(instructor=owner)
    enroll(student, course)
    assignment = models.Assignment(
        course_id=course.id, title="Linked lists", total_marks=10, weightage=20,
        due_date=models.utcnow() + timedelta(days=3), created_by=owner.id
    )
    db.add(assignment)
    db.commit()
    return owner, student, course, assignment


def _submissions(db, assignment_id):
    db.expire_all()
    return db.query(models.Submission).filter_by(assignment_id=assignment_id).all()


def test_owner_creates_assignment(client, make_user, headers_for, make_course):
    owner, other = make_user("faculty"), make_user("faculty")
    course = make_course(instructor=owner)
    payload = {"course_id": course.id, "title": "Essay", "due_date": "2030-05-01T12:00:00", "total_marks": 50}

    created = client.post("/api/assignments", json=payload, headers=headers_for(owner))
    denied = client.post("/api/assignments", json=payload, headers=headers_for(other))
    missing = client.post("/api/assignments", json={"course_id": course.id}, headers=headers_for(owner))

    assert created.status_code == 201
    assert created.json()["course_code"] == course.code
    assert created.json()["weightage"] == 0
    assert denied.status_code == 403
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing required parameters: title, due_date, total_marks"


def test_submitting_twice_keeps_one_row(client, db, headers_for, setup):
    owner, student, course, assignment = setup
    headers = headers_for(student)

    first = client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "v1.pdf"}, headers=headers)
    assert first.status_code == 201
    assert first.json()["submission"]["status"] == "submitted"

    # Deadline passes before the second attempt
    assignment.due_date = models.utcnow() - timedelta(hours=1)
    db.commit()

    second = client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "v2.pdf"}, headers=headers)
    assert second.status_code == 200
    assert second.json()["submission"]["status"] == "late"

    rows = _submissions(db, assignment.id)
    assert len(rows) == 1
    assert rows[0].file_path == "v2.pdf"
    assert rows[0].status == "late"


def test_only_enrolled_students_submit(client, make_user, headers_for, setup):
    owner, student, course, assignment = setup

    outsider = client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "x.pdf"},
                           headers=headers_for(make_user("student")))
    faculty = client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "x.pdf"},
                          headers=headers_for(owner))

    assert outsider.status_code == 403
    assert faculty.status_code == 403


def test_out_of_range_score_leaves_grade_untouched(client, db, headers_for, setup):
    owner, student, course, assignment = setup
    client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "a.pdf"},
                headers=headers_for(student))
    owner_headers = headers_for(owner)

    graded = client.post(f"/api/assignments/{assignment.id}/grade",
                         json={"student_id": student.id, "score": 8, "feedback": "Good"}, headers=owner_headers)
    too_high = client.post(f"/api/assignments/{assignment.id}/grade",
                           json={"student_id": student.id, "score": 11}, headers=owner_headers)
    negative = client.post(f"/api/assignments/{assignment.id}/grade",
                           json={"student_id": student.id, "score": -1}, headers=owner_headers)

    assert graded.status_code == 200
    assert too_high.status_code == 400
    assert too_high.json()["error"] == "Score must be between 0 and 10"
    assert negative.status_code == 400
    row = _submissions(db, assignment.id)[0]
    assert row.score == 8
    assert row.status == "graded"
    assert row.feedback == "Good"
    assert row.graded_by == owner.id
    assert row.graded_at is not None


def test_graded_submission_cannot_be_resubmitted(client, db, headers_for, setup):
    owner, student, course, assignment = setup
    headers = headers_for(student)
    client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "a.pdf"}, headers=headers)
    client.post(f"/api/assignments/{assignment.id}/grade", json={"student_id": student.id, "score": 9},
                headers=headers_for(owner))

    resp = client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "b.pdf"}, headers=headers)

    assert resp.status_code == 400
    assert _submissions(db, assignment.id)[0].file_path == "a.pdf"


def test_grading_requires_a_submission(client, headers_for, setup):
    owner, student, course, assignment = setup

    resp = client.post(f"/api/assignments/{assignment.id}/grade", json={"student_id": student.id, "score": 5},
                       headers=headers_for(owner))

    assert resp.status_code == 404


def test_submissions_list_is_staff_only(client, make_user, headers_for, setup):
    owner, student, course, assignment = setup

    as_student = client.get(f"/api/assignments/{assignment.id}/submissions", headers=headers_for(student))
    as_admin = client.get(f"/api/assignments/{assignment.id}/submissions", headers=headers_for(make_user("admin")))

    assert as_student.status_code == 403
    assert as_admin.status_code == 200
    assert as_admin.json()["submissions"] == []
    assert [s["id"] for s in as_admin.json()["missing_submissions"]] == [student.id]


def test_student_list_and_details_show_own_submission(client, headers_for, setup):
    owner, student, course, assignment = setup
    headers = headers_for(student)

    before = client.get("/api/assignments", headers=headers).json()
    client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "a.pdf"}, headers=headers)
    details = client.get(f"/api/assignments/{assignment.id}", headers=headers).json()
    by_course = client.get("/api/assignments", params={"course_id": course.id}, headers=headers).json()

    assert before[0]["submission_status"] == "not submitted"
    assert details["submission"]["file_path"] == "a.pdf"
    assert by_course[0]["submission_status"] == "submitted"


def test_staff_details_show_submission_stats(client, headers_for, setup):
    owner, student, course, assignment = setup
    client.post(f"/api/assignments/{assignment.id}/submit", json={"file_path": "a.pdf"},
                headers=headers_for(student))

    stats = client.get(f"/api/assignments/{assignment.id}", headers=headers_for(owner)).json()["submission_stats"]

    assert stats["total_students"] == 1
    assert stats["submitted"] == 1
    assert stats["not_submitted"] == 0


def test_upcoming_skips_past_deadlines(client, db, headers_for, setup):
    owner, student, course, assignment = setup
    db.add(models.Assignment(course_id=course.id, title="Old", total_marks=5,
                             due_date=models.utcnow() - timedelta(days=1), created_by=owner.id))
    db.commit()

    upcoming = client.get("/api/assignments/upcoming", headers=headers_for(student)).json()

    assert [a["title"] for a in upcoming] == ["Linked lists"]


def test_update_and_delete_assignment(client, db, make_user, headers_for, setup):
    owner, student, course, assignment = setup
    assignment_id = assignment.id
    client.post(f"/api/assignments/{assignment_id}/submit", json={"file_path": "a.pdf"},
                headers=headers_for(student))
    owner_headers = headers_for(owner)

    nothing = client.put(f"/api/assignments/{assignment_id}", json={"course_id": 99}, headers=owner_headers)
    updated = client.put(f"/api/assignments/{assignment_id}", json={"title": "Trees"}, headers=owner_headers)
    stranger = client.delete(f"/api/assignments/{assignment_id}", headers=headers_for(make_user("faculty")))
    deleted = client.delete(f"/api/assignments/{assignment_id}", headers=owner_headers)

    assert nothing.status_code == 400
    assert updated.json()["title"] == "Trees"
    assert stranger.status_code == 403
    assert deleted.status_code == 200
    assert _submissions(db, assignment_id) == []
    assert db.get(models.Assignment, assignment_id) is None
