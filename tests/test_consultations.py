import json
import uuid

from sqlalchemy.exc import OperationalError

from models import db
from models.audit_log import AuditLog
from models.consultation import Consultation
from models.slot import Slot
from tests.conftest import soon


def _book(client, user, slot_id, specialist_id, consultation_type="video", **extra):
    body = {
        "time_slot_id": slot_id,
        "specialist_id": specialist_id,
        "consultation_type": consultation_type,
        **extra,
    }
    return client.post("/rpc/book_consultation", json=body, headers=user.headers)


def _act(client, user, action, consultation_id):
    return client.post(
        "/consultation-actions",
        json={"action": action, "consultation_id": consultation_id},
        headers=user.headers,
    )


def _slot_is_booked(app, slot_id):
    with app.app_context():
        return db.session.get(Slot, slot_id).is_booked


def test_booking_derives_price_from_type(app, client, student, make_specialist, make_slot):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)

    resp = _book(client, student, slot_id, specialist.id, "video", notes="  first visit  ")

    assert resp.status_code == 201
    consultation = resp.get_json()["consultation"]
    assert consultation["price"] == 200
    assert consultation["status"] == "pending"
    assert consultation["notes"] == "first visit"
    assert consultation["user_id"] == student.id
    assert _slot_is_booked(app, slot_id)


def test_matching_client_price_is_accepted(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)

    resp = _book(client, student, slot_id, specialist.id, "audio", price=150)

    assert resp.status_code == 201
    assert resp.get_json()["consultation"]["price"] == 150


def test_tampered_price_is_rejected(app, client, student, make_specialist, make_slot):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)

    resp = _book(client, student, slot_id, specialist.id, "video", price=1)

    assert resp.status_code == 400
    assert not _slot_is_booked(app, slot_id)


def test_non_finite_price_is_rejected(app, client, student, make_specialist, make_slot):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)

    for price in ("sNaN", "-sNaN", "NaN", "Infinity"):
        resp = _book(client, student, slot_id, specialist.id, "video", price=price)
        assert resp.status_code == 400, price
        assert resp.get_json()["error"] == "Invalid price"

    assert not _slot_is_booked(app, slot_id)


def test_unknown_slot_or_wrong_specialist_is_not_found(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    other = make_specialist()
    slot_id = make_slot(specialist.id)

    unknown = _book(client, student, str(uuid.uuid4()), specialist.id)
    wrong_owner = _book(client, student, slot_id, other.id)

    assert unknown.status_code == 404
    assert wrong_owner.status_code == 404


def test_booking_validation(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)

    bad_type = _book(client, student, slot_id, specialist.id, "in_person")
    bad_id = _book(client, student, "slot-1", specialist.id)
    long_notes = _book(client, student, slot_id, specialist.id, notes="x" * 1001)

    assert bad_type.status_code == 400
    assert bad_id.status_code == 400
    assert long_notes.status_code == 400


def test_past_slot_cannot_be_booked(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id, starts_at=soon(-2))

    resp = _book(client, student, slot_id, specialist.id)

    assert resp.status_code == 400


def test_booking_requires_authentication(client, make_specialist, make_slot):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)

    resp = client.post("/rpc/book_consultation", json={
        "time_slot_id": slot_id,
        "specialist_id": specialist.id,
        "consultation_type": "video",
    })

    assert resp.status_code == 401
    assert "Authentication required" in resp.get_json()["error"]


def test_lost_slot_then_book_another(app, client, make_user, make_specialist, make_slot):
    user_a, user_b = make_user(), make_user()
    specialist = make_specialist()
    slot_s = make_slot(specialist.id)
    slot_s2 = make_slot(specialist.id, starts_at=soon(72 + 1))

    first = _book(client, user_a, slot_s, specialist.id, "video")
    lost = _book(client, user_b, slot_s, specialist.id, "video")
    second = _book(client, user_b, slot_s2, specialist.id, "video")

    assert first.status_code == 201
    assert first.get_json()["consultation"]["price"] == 200
    assert lost.status_code == 409
    assert "not available" in lost.get_json()["error"]
    assert second.status_code == 201
    with app.app_context():
        assert Consultation.query.filter_by(time_slot_id=slot_s).count() == 1


def test_specialist_confirms_and_completes(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    booked = _book(client, student, make_slot(specialist.id), specialist.id).get_json()["consultation"]

    confirmed = _act(client, specialist.account, "confirm", booked["id"])
    completed = _act(client, specialist.account, "complete", booked["id"])

    assert confirmed.status_code == 200
    assert confirmed.get_json()["consultation"]["status"] == "confirmed"
    assert completed.status_code == 200
    assert completed.get_json()["consultation"]["status"] == "completed"


def test_requester_cannot_confirm_or_complete(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    booked = _book(client, student, make_slot(specialist.id), specialist.id).get_json()["consultation"]

    assert _act(client, student, "confirm", booked["id"]).status_code == 403
    _act(client, specialist.account, "confirm", booked["id"])
    assert _act(client, student, "complete", booked["id"]).status_code == 403


def test_stranger_cannot_touch_a_consultation(client, student, make_user, make_specialist, make_slot):
    stranger = make_user()
    specialist = make_specialist()
    booked = _book(client, student, make_slot(specialist.id), specialist.id).get_json()["consultation"]

    for action in ("confirm", "complete", "cancel"):
        assert _act(client, stranger, action, booked["id"]).status_code == 403


def test_illegal_transitions_conflict(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    booked = _book(client, student, make_slot(specialist.id), specialist.id).get_json()["consultation"]

    assert _act(client, specialist.account, "complete", booked["id"]).status_code == 409

    _act(client, specialist.account, "confirm", booked["id"])
    _act(client, specialist.account, "complete", booked["id"])
    assert _act(client, specialist.account, "cancel", booked["id"]).status_code == 409


def test_repeated_transition_is_a_noop(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    booked = _book(client, student, make_slot(specialist.id), specialist.id).get_json()["consultation"]

    _act(client, specialist.account, "confirm", booked["id"])
    again = _act(client, specialist.account, "confirm", booked["id"])

    assert again.status_code == 200
    assert again.get_json()["message"] == "Consultation is already confirmed"


def test_cancel_pending_frees_slot_for_another_user(app, client, make_user, make_specialist, make_slot):
    user_a, user_b = make_user(), make_user()
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)
    booked = _book(client, user_a, slot_id, specialist.id).get_json()["consultation"]

    resp = _act(client, user_a, "cancel", booked["id"])

    assert resp.status_code == 200
    assert resp.get_json()["consultation"]["status"] == "cancelled"
    assert not _slot_is_booked(app, slot_id)
    assert _book(client, user_b, slot_id, specialist.id).status_code == 201


def test_confirmed_then_cancelled_frees_slot(app, client, make_user, make_specialist, make_slot):
    user_a, user_b = make_user(), make_user()
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)
    booked = _book(client, user_a, slot_id, specialist.id).get_json()["consultation"]
    _act(client, specialist.account, "confirm", booked["id"])

    resp = _act(client, specialist.account, "cancel", booked["id"])

    assert resp.status_code == 200
    assert not _slot_is_booked(app, slot_id)
    rebooked = _book(client, user_b, slot_id, specialist.id)
    assert rebooked.status_code == 201
    assert rebooked.get_json()["consultation"]["user_id"] == user_b.id


def test_confirmed_cancel_inside_cutoff_needs_admin(client, student, admin, make_specialist, make_slot):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id, starts_at=soon(2))
    booked = _book(client, student, slot_id, specialist.id).get_json()["consultation"]
    _act(client, specialist.account, "confirm", booked["id"])

    refused = _act(client, student, "cancel", booked["id"])
    by_admin = _act(client, admin, "cancel", booked["id"])

    assert refused.status_code == 409
    assert by_admin.status_code == 200


def test_slot_release_failure_does_not_fail_cancel(app, client, student, make_specialist, make_slot, monkeypatch):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)
    booked = _book(client, student, slot_id, specialist.id).get_json()["consultation"]

    def broken_release(time_slot_id):
        raise OperationalError("UPDATE time_slots", {}, Exception("database unavailable"))

    monkeypatch.setattr("services.consultations.release_slot", broken_release)

    resp = _act(client, student, "cancel", booked["id"])

    assert resp.status_code == 200
    assert resp.get_json()["consultation"]["status"] == "cancelled"
    with app.app_context():
        row = AuditLog.query.filter_by(action="consultation_slot_release_failed").one()
        assert row.entity_id == slot_id
        cancel_row = AuditLog.query.filter_by(action="consultation_cancel", entity_id=booked["id"]).one()
        assert json.loads(cancel_row.metadata_json)["slot_released"] is False


def test_available_slots_lists_only_free_slots(client, student, make_specialist, make_slot):
    specialist = make_specialist()
    taken = make_slot(specialist.id)
    free = make_slot(specialist.id, starts_at=soon(96))
    _book(client, student, taken, specialist.id)

    resp = client.get(f"/specialists/{specialist.id}/slots", headers=student.headers)

    assert resp.status_code == 200
    assert [s["id"] for s in resp.get_json()] == [free]


def test_available_slots_rejects_bad_date(client, student, make_specialist):
    specialist = make_specialist()

    resp = client.get(f"/specialists/{specialist.id}/slots?date=tomorrow", headers=student.headers)

    assert resp.status_code == 400


def test_store_failure_during_booking_reports_unknown_outcome(app, client, student, make_specialist, make_slot,
                                                              monkeypatch):
    specialist = make_specialist()
    slot_id = make_slot(specialist.id)
    real_commit = db.session.commit

    def failing_commit():
        if any(isinstance(obj, Consultation) for obj in db.session.new):
            raise OperationalError("COMMIT", {}, Exception("connection reset"))
        return real_commit()

    monkeypatch.setattr(db.session, "commit", failing_commit)

    resp = _book(client, student, slot_id, specialist.id)

    assert resp.status_code == 500
    assert "Refresh available time slots" in resp.get_json()["error"]
    monkeypatch.undo()
    with app.app_context():
        assert Consultation.query.filter_by(time_slot_id=slot_id).count() == 0
        assert db.session.get(Slot, slot_id).is_booked is False
