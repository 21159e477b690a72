from conftest import headers

DUE = "2030-01-22T12:00:00Z"


def assignment_json(course_id, **overrides):
    data = {
        "course_id": course_id,
        "title": "Project 1",
        "description": "Build a small CLI tool",
        "assignment_type": "Project",
        "total_points": 100,
        "grading_criteria": [
            {"criterion": "Code", "max_points": 60},
            {"criterion": "Docs", "max_points": 40},
        ],
        "due_date": DUE,
        "requirements": {"max_submissions": 2, "allowed_file_types": ["py", "pdf"]},
    }
    data.update(overrides)
    return data


def create_published(client, seed):
    fac = headers(seed["faculty1"], "faculty")
    r = client.post("/assignments", json=assignment_json(seed["course"]), headers=fac)
    assert r.status_code == 201, r.text
    assignment_id = r.json()["id"]

    r = client.post(f"/assignments/{assignment_id}/transition", json={"status": "published"}, headers=fac)
    assert r.status_code == 200, r.text
    return assignment_id


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_identity_headers_required(client, seed):
    assert client.get("/assignments/overview").status_code == 401
    # role must match the stored user
    r = client.get("/assignments/overview", headers=headers(seed["student1"], "admin"))
    assert r.status_code == 401
    r = client.get("/assignments/overview", headers=headers(999999, "admin"))
    assert r.status_code == 401


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"
    assert client.get("/health").headers.get("X-Request-ID")


def test_full_submission_flow(client, seed):
    fac = headers(seed["faculty1"], "faculty")
    stu = headers(seed["student1"], "student")
    assignment_id = create_published(client, seed)

    r = client.post(
        f"/assignments/{assignment_id}/submissions",
        json={"files": [{"name": "main.py", "url": "/files/s/main.py", "size": 120}], "student_comments": "done"},
        headers=stu,
    )
    assert r.status_code == 201, r.text
    submission = r.json()
    assert submission["submission_number"] == 1
    assert submission["status"] == "submitted"
    assert submission["is_late"] is False

    r = client.post(
        f"/submissions/{submission['id']}/grade",
        json={
            "criteria_scores": [
                {"criterion": "Code", "max_points": 60, "earned_points": 55},
                {"criterion": "Docs", "max_points": 40, "earned_points": 35},
            ],
            "feedback": {"general": "Nice work"},
        },
        headers=fac,
    )
    assert r.status_code == 200, r.text
    graded = r.json()
    assert graded["status"] == "graded"
    assert graded["calculated_score"] == 90.0
    assert graded["grade_letter"] == "A-"
    assert graded["feedback"]["general"] == "Nice work"

    r = client.get(f"/assignments/{assignment_id}/statistics", headers=fac)
    assert r.status_code == 200
    summary = r.json()["summary"]
    assert summary["average_score"] == 90.0
    assert summary["graded_submissions"] == 1

    r = client.get(f"/students/{seed['student1']}/submissions", headers=stu)
    assert r.status_code == 200
    assert r.json()["total"] == 1

    r = client.get(f"/students/{seed['student1']}/assignments", headers=stu)
    assert r.status_code == 200
    page = r.json()
    assert [a["id"] for a in page["items"]] == [assignment_id]
    assert page["student_info"]["semester"] == "Spring"

    r = client.get("/submissions/statistics", headers=stu)
    assert r.json()["total_submissions"] == 1


def test_other_student_cannot_read_submission(client, seed):
    assignment_id = create_published(client, seed)
    r = client.post(
        f"/assignments/{assignment_id}/submissions",
        json={"files": [{"name": "main.py", "url": "/files/s/main.py", "size": 64}]},
        headers=headers(seed["student1"], "student"),
    )
    submission_id = r.json()["id"]

    r = client.get(f"/submissions/{submission_id}", headers=headers(seed["student2"], "student"))
    assert r.status_code == 403


def test_non_owner_update_is_forbidden(client, seed):
    assignment_id = create_published(client, seed)
    r = client.patch(
        f"/assignments/{assignment_id}",
        json={"title": "Mine now"},
        headers=headers(seed["faculty2"], "faculty"),
    )
    assert r.status_code == 403


def test_delete_with_submissions_is_a_conflict(client, seed):
    fac = headers(seed["faculty1"], "faculty")
    assignment_id = create_published(client, seed)
    client.post(
        f"/assignments/{assignment_id}/submissions",
        json={"files": [{"name": "main.py", "url": "/files/s/main.py", "size": 64}]},
        headers=headers(seed["student1"], "student"),
    )

    r = client.delete(f"/assignments/{assignment_id}", headers=fac)
    assert r.status_code == 409
    assert r.json()["detail"]


def test_criteria_mismatch_is_a_bad_request(client, seed):
    r = client.post(
        "/assignments",
        json=assignment_json(seed["course"], total_points=90),
        headers=headers(seed["faculty1"], "faculty"),
    )
    assert r.status_code == 400
    assert "criteria" in r.json()["detail"].lower()


def test_unknown_assignment_is_not_found(client, seed):
    r = client.get("/assignments/999999", headers=headers(seed["admin"], "admin"))
    assert r.status_code == 404


def test_file_upload_and_removal(client, seed, storage_override):
    fac = headers(seed["faculty1"], "faculty")
    r = client.post("/assignments", json=assignment_json(seed["course"]), headers=fac)
    assignment_id = r.json()["id"]

    r = client.post(
        f"/assignments/{assignment_id}/files",
        files={"file": ("brief.pdf", b"%PDF-1.4", "application/pdf")},
        headers=fac,
    )
    assert r.status_code == 201, r.text
    files = r.json()["files"]
    assert len(files) == 1
    assert files[0]["name"] == "brief.pdf"
    assert files[0]["size"] == 8
    assert files[0]["url"] in storage_override.objects

    r = client.delete(f"/assignments/{assignment_id}/files", params={"url": files[0]["url"]}, headers=fac)
    assert r.status_code == 200
    assert r.json()["files"] == []
    assert storage_override.deleted == [files[0]["url"]]


def test_overview_is_not_taken_for_an_id(client, seed):
    create_published(client, seed)
    r = client.get("/assignments/overview", headers=headers(seed["faculty1"], "faculty"))
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 1
    assert body["by_status"] == {"published": 1}


def test_course_listing_hides_drafts_from_students(client, seed):
    fac = headers(seed["faculty1"], "faculty")
    published_id = create_published(client, seed)
    client.post("/assignments", json=assignment_json(seed["course"], title="Draft"), headers=fac)

    r = client.get(f"/courses/{seed['course']}/assignments", headers=headers(seed["student1"], "student"))
    assert r.status_code == 200
    assert [a["id"] for a in r.json()] == [published_id]

    r = client.get(f"/courses/{seed['course']}/assignments", headers=headers(seed["student2"], "student"))
    assert r.status_code == 403


def test_admin_creates_users_and_enrolls_students(client, seed):
    admin = headers(seed["admin"], "admin")

    r = client.post("/users", json={"email": "New.Student@Example.com", "first_name": "Nia", "last_name": "New"}, headers=admin)
    assert r.status_code == 201, r.text
    user = r.json()
    assert user["email"] == "new.student@example.com"
    assert user["full_name"] == "Nia New"

    assert client.post("/users", json={"email": "new.student@example.com"}, headers=admin).status_code == 409
    r = client.post("/users", json={"email": "x@example.com"}, headers=headers(seed["faculty1"], "faculty"))
    assert r.status_code == 403

    r = client.post(
        "/enrollments",
        json={"course_id": seed["course"], "student_id": user["id"], "semester": "Spring", "academic_year": "2029-2030"},
        headers=admin,
    )
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "active"

    r = client.get("/courses/me", headers=headers(user["id"], "student"))
    assert [c["code"] for c in r.json()] == ["CS101"]


def test_enrollment_rules(client, seed):
    stu = headers(seed["student1"], "student")
    r = client.post("/enrollments", json={"course_id": seed["course"]}, headers=stu)
    assert r.status_code == 409

    r = client.post("/enrollments", json={"course_id": 999999}, headers=headers(seed["student2"], "student"))
    assert r.status_code == 404

    r = client.post(
        "/enrollments",
        json={"course_id": seed["course"], "student_id": seed["student2"]},
        headers=stu,
    )
    assert r.status_code == 403


def test_faculty_creates_own_course(client, seed):
    fac = headers(seed["faculty2"], "faculty")
    r = client.post("/courses/", json={"code": "CS202", "name": "Data Structures"}, headers=fac)
    assert r.status_code == 201, r.text
    assert r.json()["faculty_id"] == seed["faculty2"]

    assert client.post("/courses/", json={"code": "CS202", "name": "Again"}, headers=fac).status_code == 409
    r = client.post("/courses/", json={"code": "CS303", "name": "x"}, headers=headers(seed["student1"], "student"))
    assert r.status_code == 403
