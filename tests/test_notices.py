# tests/test_notices.py
import models


def _notice(db, creator, type="general", **fields):
    notice = models.Notice(title=fields.pop("title", f"{type} notice"), content="Details", type=type,
                           created_by=creator.id, **fields)
    db.add(notice)
    db.commit()
    return notice


def test_student_sees_only_their_audience(client, db, make_user, headers_for, make_course, enroll, department):
    other_dept = models.Department(name="Mechanical")
    db.add(other_dept)
    db.commit()
    admin = make_user("admin")
    student = make_user("student", department_id=department.id)
    mine, theirs = make_course(), make_course()
    enroll(student, mine)

    general = _notice(db, admin, title="Holiday")
    own_dept = _notice(db, admin, "department", department_id=department.id, title="CS seminar")
    _notice(db, admin, "department", department_id=other_dept.id, title="ME seminar")
    own_course = _notice(db, admin, "course", course_id=mine.id, title="Quiz moved")
    _notice(db, admin, "course", course_id=theirs.id, title="Lab closed")

    body = client.get("/api/notices", headers=headers_for(student)).json()
    everything = client.get("/api/notices", headers=headers_for(admin)).json()

    assert {n["id"] for n in body} == {general.id, own_dept.id, own_course.id}
    assert len(everything) == 5


def test_filters_require_membership(client, db, make_user, headers_for, make_course, department):
    student = make_user("student")
    course = make_course()

    by_course = client.get("/api/notices", params={"course_id": course.id}, headers=headers_for(student))
    by_dept = client.get("/api/notices", params={"department_id": department.id}, headers=headers_for(student))
    admin = client.get("/api/notices", params={"type": "course", "course_id": course.id},
                       headers=headers_for(make_user("admin")))

    assert by_course.status_code == 403
    assert by_dept.status_code == 403
    assert admin.status_code == 200


def test_repeated_views_record_one_receipt(client, db, make_user, headers_for):
    admin = make_user("admin")
    notice = _notice(db, admin)
    reader = make_user("student")
    headers = headers_for(reader)

    first = client.get(f"/api/notices/{notice.id}", headers=headers).json()
    second = client.get(f"/api/notices/{notice.id}", headers=headers).json()

    assert first["read_count"] == 1
    assert second["read_count"] == 1
    assert db.query(models.NoticeRead).filter_by(notice_id=notice.id, user_id=reader.id).count() == 1

    client.get(f"/api/notices/{notice.id}", headers=headers_for(admin))
    assert client.get(f"/api/notices/{notice.id}", headers=headers).json()["read_count"] == 2


def test_course_notice_hidden_from_outsiders(client, db, make_user, headers_for, make_course):
    course = make_course()
    notice = _notice(db, make_user("admin"), "course", course_id=course.id)

    resp = client.get(f"/api/notices/{notice.id}", headers=headers_for(make_user("student")))

    assert resp.status_code == 403
    assert resp.json()["error"] == "You do not have access to this notice"
    assert db.query(models.NoticeRead).count() == 0


def test_create_notice_with_attachments(client, db, make_user, headers_for, make_course):
    owner = make_user("faculty")
    course = make_course(instructor=owner)

    resp = client.post("/api/notices", json={
        "title": "Exam", "content": "Room 4", "type": "course", "course_id": course.id,
        "priority": "high",
        "attachments": [{"file_path": "/f/seat.pdf", "file_name": "seat.pdf"}, {"file_path": "broken"}],
    }, headers=headers_for(owner))

    assert resp.status_code == 201
    body = resp.json()
    assert body["priority"] == "high"
    assert [a["file_name"] for a in body["attachments"]] == ["seat.pdf"]
    assert db.query(models.NoticeAttachment).count() == 1


def test_create_notice_rules(client, make_user, headers_for, make_course, department):
    faculty = make_user("faculty")
    headers = headers_for(faculty)
    someone_elses = make_course(instructor=make_user("faculty"))
    base = {"title": "T", "content": "C"}

    student = client.post("/api/notices", json=dict(base, type="general"), headers=headers_for(make_user("student")))
    bad_type = client.post("/api/notices", json=dict(base, type="gossip"), headers=headers)
    no_course = client.post("/api/notices", json=dict(base, type="course"), headers=headers)
    not_owner = client.post("/api/notices", json=dict(base, type="course", course_id=someone_elses.id),
                            headers=headers)
    other_dept = client.post("/api/notices", json=dict(base, type="department", department_id=department.id),
                             headers=headers)

    assert student.status_code == 403
    assert bad_type.json()["error"] == "Invalid notice type"
    assert no_course.json()["error"] == "Course ID is required for course notices"
    assert not_owner.status_code == 403
    assert other_dept.status_code == 403


def test_update_notice_attachments(client, db, make_user, headers_for):
    author = make_user("faculty")
    notice = _notice(db, author)
    db.add(models.NoticeAttachment(notice_id=notice.id, file_path="/old", file_name="old.pdf"))
    db.commit()
    headers = headers_for(author)

    nothing = client.put(f"/api/notices/{notice.id}", json={"type": "course"}, headers=headers)
    appended = client.put(f"/api/notices/{notice.id}", json={
        "attachments": [{"file_path": "/new", "file_name": "new.pdf"}]
    }, headers=headers)
    replaced = client.put(f"/api/notices/{notice.id}", json={
        "title": "Updated", "replace_attachments": True,
        "attachments": [{"file_path": "/final", "file_name": "final.pdf"}]
    }, headers=headers)
    stranger = client.put(f"/api/notices/{notice.id}", json={"title": "Mine now"},
                          headers=headers_for(make_user("faculty")))

    assert nothing.status_code == 400
    assert [a["file_name"] for a in appended.json()["attachments"]] == ["old.pdf", "new.pdf"]
    assert replaced.json()["title"] == "Updated"
    assert [a["file_name"] for a in replaced.json()["attachments"]] == ["final.pdf"]
    assert stranger.status_code == 403
    assert stranger.json()["error"] == "You can only update notices you created"


def test_delete_notice_removes_children(client, db, make_user, headers_for):
    author = make_user("faculty")
    notice = _notice(db, author)
    notice_id = notice.id
    db.add(models.NoticeAttachment(notice_id=notice_id, file_path="/a", file_name="a.pdf"))
    db.add(models.NoticeRead(notice_id=notice_id, user_id=author.id))
    db.commit()

    denied = client.delete(f"/api/notices/{notice_id}", headers=headers_for(make_user("faculty")))
    resp = client.delete(f"/api/notices/{notice_id}", headers=headers_for(make_user("admin")))

    assert denied.status_code == 403
    assert resp.status_code == 200
    db.expire_all()
    assert db.get(models.Notice, notice_id) is None
    assert db.query(models.NoticeAttachment).count() == 0
    assert db.query(models.NoticeRead).count() == 0


def test_badly_typed_attachment_is_rejected(client, db, make_user, headers_for):
    author = make_user("admin")
    headers = headers_for(author)
    notice = _notice(db, author)

    created = client.post("/api/notices", json={
        "title": "Exam", "content": "Room 4", "type": "general",
        "attachments": [{"file_path": 5, "file_name": "a.pdf"}],
    }, headers=headers)
    updated = client.put(f"/api/notices/{notice.id}", json={
        "title": "Renamed", "attachments": [{"file_path": "/a", "file_name": ["a.pdf"]}],
    }, headers=headers)

    assert created.status_code == 400
    assert created.json() == {"error": "Invalid parameters: file_path"}
    assert updated.status_code == 400
    assert updated.json() == {"error": "Invalid parameters: file_name"}
    db.expire_all()
    assert db.query(models.Notice).count() == 1
    assert db.get(models.Notice, notice.id).title == "general notice"
    assert db.query(models.NoticeAttachment).count() == 0
