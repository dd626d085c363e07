import json

from sqlalchemy.exc import OperationalError

from models.audit_log import AuditLog, ErrorLog
from utils.audit import record


def test_record_never_raises(app, monkeypatch):
    def broken_write(row):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))

    monkeypatch.setattr("utils.audit._write", broken_write)

    with app.app_context():
        record(None, "enrollment_enroll", "enrollment", "x", {"status": "created"})
        assert AuditLog.query.count() == 0


def test_request_succeeds_when_auditing_fails(app, client, student, make_course, monkeypatch):
    def broken_write(row):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))

    monkeypatch.setattr("utils.audit._write", broken_write)

    resp = client.post(
        "/enrollment-actions",
        json={"action": "enroll", "course_id": make_course()},
        headers=student.headers,
    )

    assert resp.status_code == 200
    assert resp.get_json()["enrollment"]["status"] == "pending"


def test_unexpected_error_is_generic_and_logged(app, client, student, make_course, monkeypatch):
    def exploding_enroll(*args, **kwargs):
        raise RuntimeError("secret connection string leaked")

    monkeypatch.setattr("routes.enrollment_actions.enroll", exploding_enroll)

    resp = client.post(
        "/enrollment-actions",
        json={"action": "enroll", "course_id": make_course()},
        headers=student.headers,
    )

    assert resp.status_code == 500
    assert resp.get_json() == {"error": "An unexpected error occurred"}
    assert b"secret" not in resp.data

    with app.app_context():
        row = ErrorLog.query.one()
        assert row.user_id == student.id
        assert "secret connection string leaked" in row.error_message
        assert json.loads(row.request_data)["path"] == "/enrollment-actions"


def test_audit_log_listing_is_admin_only(client, student, admin, make_course):
    client.post(
        "/enrollment-actions",
        json={"action": "enroll", "course_id": make_course()},
        headers=student.headers,
    )

    assert client.get("/admin/audit-logs", headers=student.headers).status_code == 403
    assert client.get("/admin/error-logs", headers=student.headers).status_code == 403

    resp = client.get("/admin/audit-logs", headers=admin.headers)
    assert resp.status_code == 200
    assert any(entry["action"] == "enrollment_enroll" for entry in resp.get_json())
