import json

from models import db
from models.audit_log import AuditLog
from models.availability_slot import SLOT_BOOKED
from models.user import User
from security.password import hash_rounds, verify_password

PASSWORD = "CorrectHorse42"


def _register_and_login(app, email):
    client = app.test_client()
    resp = client.post("/auth/register", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 201, resp.get_json()
    resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200
    return client, client.get_cookie("csrf_token").value


def _first_sse_event(resp):
    chunk = next(resp.iter_encoded()).decode()
    resp.close()
    lines = chunk.strip().split("\n")
    event = lines[0][len("event: "):]
    data = json.loads("".join(l[len("data: "):] for l in lines if l.startswith("data: ")))
    return event, data


def test_health(app):
    resp = app.test_client().get("/health")
    assert resp.status_code == 200


def test_register_grants_signup_points(app):
    client, _ = _register_and_login(app, "newbie@example.com")

    me = client.get("/auth/me").get_json()
    assert me["points"] == 100
    assert me["user_name"] == "newbie"

    balance = client.get("/me/balance").get_json()
    assert balance["points"] == 100


def test_register_rejects_duplicates_and_weak_passwords(app):
    client = app.test_client()
    assert client.post("/auth/register", json={"email": "a@example.com", "password": PASSWORD}).status_code == 201
    assert client.post("/auth/register", json={"email": "A@example.com", "password": PASSWORD}).status_code == 409
    assert client.post("/auth/register", json={"email": "b@example.com", "password": "short"}).status_code == 400
    assert client.post("/auth/register", json={"email": "nope", "password": PASSWORD}).status_code == 400


def test_login_with_wrong_password(app, make_user):
    user = make_user()
    resp = app.test_client().post("/auth/login", json={"email": user.email, "password": "WrongHorse42"})
    assert resp.status_code == 401


def test_profile_cannot_set_points(app):
    client, csrf = _register_and_login(app, "carol@example.com")

    resp = client.post(
        "/auth/profile",
        json={"user_name": "Carol", "bio": "Knits", "points": 100000},
        headers={"X-CSRF-Token": csrf},
    )

    assert resp.status_code == 200
    profile = resp.get_json()["profile"]
    assert profile["user_name"] == "Carol"
    assert profile["points"] == 100


def test_writes_require_csrf_header(app, login, make_user):
    alice = login(make_user())

    resp = alice.client.post("/skills", json={"title": "Yoga"})
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "CSRF_FAILED"


def test_anonymous_requests(app, make_user, make_skill, make_slot):
    client = app.test_client()
    instructor = make_user()
    skill = make_skill(instructor)
    slot = make_slot(skill)

    assert client.get("/skills").status_code == 401
    assert client.get("/me/balance").status_code == 401

    resp = client.post("/bookings", json={"skill_id": skill.id, "slot_id": slot.id})
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "NOT_AUTHENTICATED"


def test_skill_catalogue(login, make_user):
    chef = login(make_user())

    resp = chef.post("/skills", json={
        "title": "Sourdough",
        "description": "Starter to loaf",
        "category": "Cooking",
        "points_price": 15,
        "duration_minutes": 90,
    })
    assert resp.status_code == 201
    skill = resp.get_json()
    assert skill["points_price"] == 15

    bad = chef.post("/skills", json={"title": "", "points_price": 0})
    assert bad.status_code == 400
    assert bad.get_json()["details"]

    assert [s["id"] for s in chef.get("/skills?category=Cooking").get_json()] == [skill["id"]]
    assert chef.get("/skills?category=Music").get_json() == []
    assert chef.get("/skills/categories").get_json() == ["Cooking"]
    assert chef.get("/skills?sort=price").status_code == 400
    assert chef.get("/skills/9999").status_code == 404


def test_full_booking_flow(app, login, make_user):
    instructor = login(make_user(points=50))
    alice = login(make_user(points=30))
    bob = login(make_user(points=100))

    skill = instructor.post("/skills", json={
        "title": "Guitar basics",
        "description": "Chords and strumming",
        "category": "Music",
        "points_price": 20,
        "duration_minutes": 60,
    }).get_json()

    slot_resp = instructor.post(f"/skills/{skill['id']}/slots", json={
        "start_time": "2099-01-20T18:00:00Z",
        "end_time": "2099-01-20T19:00:00Z",
    })
    assert slot_resp.status_code == 201
    slot = slot_resp.get_json()

    dup = instructor.post(f"/skills/{skill['id']}/slots", json={
        "start_time": "2099-01-20T18:00:00",
        "end_time": "2099-01-20T19:00:00",
    })
    assert dup.status_code == 409
    assert dup.get_json()["code"] == "DUPLICATE_SLOT"

    open_slots = alice.get(f"/skills/{skill['id']}/slots").get_json()
    assert [s["id"] for s in open_slots] == [slot["id"]]

    own = instructor.post("/bookings", json={"skill_id": skill["id"], "slot_id": slot["id"]})
    assert own.status_code == 400
    assert own.get_json()["code"] == "SELF_BOOKING_FORBIDDEN"

    missing = alice.post("/bookings", json={"skill_id": skill["id"]})
    assert missing.status_code == 400
    assert missing.get_json()["code"] == "NO_SLOT_SELECTED"

    resp = alice.post("/bookings", json={"skill_id": skill["id"], "slot_id": slot["id"]})
    assert resp.status_code == 201
    booking = resp.get_json()
    assert booking["status"] == "confirmed"
    assert booking["skill_points_price"] == 20

    taken = bob.post("/bookings", json={"skill_id": skill["id"], "slot_id": slot["id"]})
    assert taken.status_code == 409
    assert taken.get_json()["code"] == "SLOT_UNAVAILABLE"
    assert taken.get_json()["retryable"] is False

    assert alice.get("/me/balance").get_json()["points"] == 10
    assert instructor.get("/me/balance").get_json()["points"] == 70
    assert bob.get("/me/balance").get_json()["points"] == 100

    assert alice.get(f"/skills/{skill['id']}/slots").get_json() == []
    all_slots = instructor.get(f"/skills/{skill['id']}/slots/all").get_json()
    assert all_slots[0]["status"] == SLOT_BOOKED
    assert alice.get(f"/skills/{skill['id']}/slots/all").status_code == 403

    deleted = instructor.delete(f"/skills/{skill['id']}/slots/{slot['id']}")
    assert deleted.status_code == 409

    assert [b["id"] for b in alice.get("/bookings/me?role=student").get_json()] == [booking["id"]]
    assert [b["id"] for b in instructor.get("/bookings/me?role=instructor").get_json()] == [booking["id"]]
    assert bob.get(f"/bookings/{booking['id']}").status_code == 404

    sent = alice.post(f"/bookings/{booking['id']}/messages", json={"text": "Looking forward to it"})
    assert sent.status_code == 201
    assert alice.post(f"/bookings/{booking['id']}/messages", json={"text": "  "}).status_code == 400
    assert bob.post(f"/bookings/{booking['id']}/messages", json={"text": "me too"}).status_code == 404
    thread = instructor.get(f"/bookings/{booking['id']}/messages").get_json()
    assert [m["text"] for m in thread] == ["Looking forward to it"]

    early = alice.post(f"/bookings/{booking['id']}/complete")
    assert early.status_code == 409
    assert early.get_json()["code"] == "BOOKING_NOT_FINISHED"

    not_yours = alice.post(f"/bookings/{booking['id']}/cancel")
    assert not_yours.status_code == 403

    cancelled = instructor.post(f"/bookings/{booking['id']}/cancel", json={"reason": "Travelling"})
    assert cancelled.status_code == 200
    assert cancelled.get_json()["status"] == "cancelled"
    assert cancelled.get_json()["cancel_reason"] == "Travelling"

    again = instructor.post(f"/bookings/{booking['id']}/cancel")
    assert again.status_code == 409
    assert again.get_json()["code"] == "INVALID_STATUS_TRANSITION"

    actions = {row.action for row in AuditLog.query.all()}
    assert {"SKILL_CREATE", "SLOT_CREATE", "BOOKING_CREATE", "BOOKING_CANCEL"} <= actions
    assert "BOOKING_FAIL_SLOT_UNAVAILABLE" in actions
    assert "BOOKING_FAIL_SELF_BOOKING_FORBIDDEN" in actions


def test_insufficient_balance_over_http(login, make_user, make_skill, make_slot):
    instructor = make_user(points=0)
    skill = make_skill(instructor, points_price=20)
    slot = make_slot(skill)
    poor = login(make_user(points=12))

    resp = poor.post("/bookings", json={"skill_id": skill.id, "slot_id": slot.id})

    assert resp.status_code == 402
    body = resp.get_json()
    assert body["code"] == "INSUFFICIENT_BALANCE"
    assert body["shortfall"] == 8
    assert poor.get("/me/balance").get_json()["points"] == 12

    fail = AuditLog.query.filter_by(action="BOOKING_FAIL_INSUFFICIENT_BALANCE").one()
    assert fail.details["shortfall"] == 8


def test_unknown_skill_over_http(login, make_user):
    student = login(make_user())
    resp = student.post("/bookings", json={"skill_id": 4242, "slot_id": 1})
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "SKILL_NOT_FOUND"


def test_balance_stream_first_event(app, login, make_user):
    student = login(make_user(points=42))

    resp = student.client.get("/me/balance/stream", buffered=False)
    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"

    event, data = _first_sse_event(resp)
    assert event == "balance"
    assert data == 42


def test_slot_stream_first_event(app, login, make_user, make_skill, make_slot):
    instructor = make_user()
    skill = make_skill(instructor)
    slot = make_slot(skill)
    student = login(make_user())

    resp = student.client.get(f"/skills/{skill.id}/slots/stream", buffered=False)
    event, data = _first_sse_event(resp)

    assert event == "slots"
    assert [s["id"] for s in data] == [slot.id]


def test_logout_ends_session(login, make_user):
    user = login(make_user())
    assert user.get("/auth/me").status_code == 200

    assert user.post("/auth/logout").status_code == 200
    assert user.get("/auth/me").status_code == 401


def test_login_upgrades_old_hash(app, make_user):
    user = make_user()
    user_id, old_hash = user.id, user.password_hash
    app.config["BCRYPT_ROUNDS"] = 5

    resp = app.test_client().post("/auth/login", json={"email": user.email, "password": PASSWORD})
    assert resp.status_code == 200

    upgraded = db.session.get(User, user_id).password_hash
    assert upgraded != old_hash
    assert hash_rounds(upgraded) == 5
    assert verify_password(PASSWORD, upgraded)


def test_session_of_deleted_account_is_anonymous(login, make_user):
    user = login(make_user())
    db.session.delete(db.session.get(User, user.user_id))
    db.session.commit()

    resp = user.get("/auth/me")
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "NOT_AUTHENTICATED"
