# tests/test_grades.py
from datetime import date, timedelta

import models


def test_transcript_gpa_ignores_ungraded(client, make_user, headers_for, make_course, enroll):
    student = make_user("student")
    enroll(student, make_course(credits=3), grade_point=4.0, grade_letter="A")
    enroll(student, make_course(credits=4), grade_point=3.0, grade_letter="B")
    enroll(student, make_course(credits=2))

    resp = client.get(f"/api/grades/{student.id}", headers=headers_for(student))

    assert resp.status_code == 200
    assert resp.json()["gpa"] == 3.43
    assert resp.json()["total_credits"] == 7
    assert len(resp.json()["courses"]) == 3


def test_student_overview_is_own_transcript(client, make_user, headers_for, make_course, enroll):
    student = make_user("student")
    enroll(student, make_course(credits=3), grade_point=3.0, grade_letter="B")

    body = client.get("/api/grades", headers=headers_for(student)).json()

    assert body["student"]["id"] == student.id
    assert body["gpa"] == 3.0


def test_other_students_grades_are_forbidden_except_for_admin(client, make_user, headers_for, make_course, enroll):
    first, second = make_user("student"), make_user("student")
    course = make_course()
    enroll(second, course, grade_point=2.0, grade_letter="C")
    admin_headers = headers_for(make_user("admin"))

    denied = client.get(f"/api/grades/{second.id}", headers=headers_for(first))
    denied_course = client.get(f"/api/grades/{second.id}/{course.id}", headers=headers_for(first))
    allowed = client.get(f"/api/grades/{second.id}", headers=admin_headers)
    allowed_course = client.get(f"/api/grades/{second.id}/{course.id}", headers=admin_headers)

    assert denied.status_code == 403
    assert denied_course.status_code == 403
    assert allowed.status_code == 200
    assert allowed_course.status_code == 200


def test_course_breakdown(client, db, make_user, headers_for, make_course, enroll):
    owner = make_user("faculty")
    student = make_user("student")
    course = make_course(instructor=owner)
    enroll(student, course, grade_point=3.5, grade_letter="B+")
    graded = models.Assignment(course_id=course.id, title="Quiz", total_marks=20, weightage=40,
                               due_date=models.utcnow() - timedelta(days=2), created_by=owner.id)
    pending = models.Assignment(course_id=course.id, title="Project", total_marks=100, weightage=60,
                                due_date=models.utcnow() + timedelta(days=10), created_by=owner.id)
    db.add_all([graded, pending])
    db.flush()
    db.add_all([
        models.Submission(assignment_id=graded.id, student_id=student.id, file_path="q.pdf",
                          submitted_date=models.utcnow(), status="graded", score=15),
        models.Attendance(student_id=student.id, course_id=course.id, date=date(2024, 1, 1), status="present"),
        models.Attendance(student_id=student.id, course_id=course.id, date=date(2024, 1, 2), status="absent"),
    ])
    db.commit()

    body = client.get(f"/api/grades/{student.id}/{course.id}", headers=headers_for(student)).json()

    assert body["enrollment"]["grade_letter"] == "B+"
    quiz, project = body["assignments"]
    assert quiz["percentage"] == 75.0
    assert project["status"] == "not submitted"
    assert body["total_weightage"] == 40
    assert body["weighted_score"] == 30.0
    assert body["attendance"]["attendance_percentage"] == 50.0


def test_faculty_must_teach_course_for_breakdown(client, make_user, headers_for, make_course, enroll):
    student = make_user("student")
    course = make_course(instructor=make_user("faculty"))
    enroll(student, course)

    resp = client.get(f"/api/grades/{student.id}/{course.id}", headers=headers_for(make_user("faculty")))

    assert resp.status_code == 403


def test_course_grades_distribution(client, make_user, headers_for, make_course, enroll):
    owner = make_user("faculty")
    course = make_course(instructor=owner)
    enroll(make_user("student"), course, grade_point=4.0, grade_letter="A")
    enroll(make_user("student"), course, grade_point=3.7, grade_letter="A-")
    enroll(make_user("student"), course, grade_point=2.0, grade_letter="C")
    enroll(make_user("student"), course)

    body = client.get(f"/api/grades/course/{course.id}", headers=headers_for(owner)).json()

    assert body["grade_distribution"] == {"A": 2, "B": 0, "C": 1, "D": 0, "F": 0, "Not Graded": 1}
    assert body["total_students"] == 4
    assert body["graded_students"] == 3
    assert len(body["students"]) == 4


def test_enrolled_student_gets_own_breakdown_for_course(client, make_user, headers_for, make_course, enroll):
    student = make_user("student")
    course = make_course()
    enroll(student, course)

    own = client.get(f"/api/grades/course/{course.id}", headers=headers_for(student))
    outsider = client.get(f"/api/grades/course/{course.id}", headers=headers_for(make_user("student")))

    assert own.status_code == 200
    assert own.json()["student"]["id"] == student.id
    assert outsider.status_code == 403


def test_staff_overview_lists_taught_courses(client, make_user, headers_for, make_course, enroll):
    owner = make_user("faculty")
    taught = make_course(instructor=owner)
    make_course(instructor=make_user("faculty"))
    enroll(make_user("student"), taught, grade_point=3.0, grade_letter="B")

    body = client.get("/api/grades", headers=headers_for(owner)).json()

    assert [c["course_id"] for c in body["courses"]] == [taught.id]
    assert body["courses"][0]["average_grade_point"] == 3.0


def test_batch_grades_collect_errors(client, db, make_user, headers_for, make_course, enroll):
    owner = make_user("faculty")
    course = make_course(instructor=owner)
    good = make_user("student")
    enroll(good, course)
    outsider = make_user("student")

    resp = client.post(f"/api/grades/{course.id}", json={"grades_data": [
        {"student_id": good.id, "grade_point": 3.7, "grade_letter": "a-"},
        {"student_id": good.id, "grade_point": 5.0, "grade_letter": "A"},
        {"student_id": outsider.id, "grade_point": 3.0, "grade_letter": "B"},
        {"student_id": good.id},
    ]}, headers=headers_for(owner))

    assert resp.status_code == 200
    body = resp.json()
    assert body["updated"] == 1
    assert [e["index"] for e in body["errors"]] == [1, 2, 3]
    assert body["errors"][0]["error"] == "Grade point must be between 0 and 4.0"
    assert body["errors"][1]["error"] == "Student is not enrolled in this course"
    db.expire_all()
    enrollment = db.query(models.Enrollment).one()
    assert enrollment.grade_point == 3.7
    assert enrollment.grade_letter == "A-"
    assert enrollment.updated_by == owner.id


def test_single_grade_update(client, make_user, headers_for, make_course, enroll):
    owner = make_user("faculty")
    course = make_course(instructor=owner)
    enrollment = enroll(make_user("student"), course)

    bad = client.put(f"/api/grades/{enrollment.id}", json={"grade_point": -1, "grade_letter": "F"},
                     headers=headers_for(owner))
    ok = client.put(f"/api/grades/{enrollment.id}", json={"grade_point": 2.7, "grade_letter": "B-"},
                    headers=headers_for(owner))
    student = client.put(f"/api/grades/{enrollment.id}", json={"grade_point": 4, "grade_letter": "A"},
                         headers=headers_for(make_user("student")))

    assert bad.status_code == 400
    assert ok.status_code == 200
    assert ok.json()["enrollment"]["grade_letter"] == "B-"
    assert student.status_code == 403
