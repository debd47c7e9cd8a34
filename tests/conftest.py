import itertools
from datetime import timedelta

import pytest

from app import create_app
from config import TestingConfig
from models import db
from models.availability_slot import SLOT_AVAILABLE, AvailabilitySlot
from models.skill import Skill
from models.user import User
from security.password import hash_password
from utils.clock import utcnow

PASSWORD = "CorrectHorse42"


@pytest.fixture
def app(tmp_path):
    class _Config(TestingConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "skillswap.db")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(points=100, email=None, user_name=None):
        n = next(counter)
        user = User(
            email=email or f"user{n}@example.com",
            password_hash=hash_password(PASSWORD),
            user_name=user_name or f"user{n}",
            bio="",
            points=points,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_skill(app):
    def _make(instructor, points_price=20, title="Guitar basics", category="Music"):
        skill = Skill(
            instructor_id=instructor.id,
            title=title,
            description=f"{title} for beginners",
            category=category,
            points_price=points_price,
            duration_minutes=60,
        )
        db.session.add(skill)
        db.session.commit()
        return skill

    return _make


@pytest.fixture
def make_slot(app):
    def _make(skill, hours_from_now=24, length_minutes=60, status=SLOT_AVAILABLE):
        start = (utcnow() + timedelta(hours=hours_from_now)).replace(microsecond=0)
        slot = AvailabilitySlot(
            skill_id=skill.id,
            instructor_id=skill.instructor_id,
            start_time=start,
            end_time=start + timedelta(minutes=length_minutes),
            status=status,
        )
        db.session.add(slot)
        db.session.commit()
        return slot

    return _make


class AuthedClient:
    """Test client logged in as one user, sending the CSRF header on writes."""

    def __init__(self, client, csrf_token, user_id):
        self.client = client
        self.csrf_token = csrf_token
        self.user_id = user_id

    def _headers(self):
        return {"X-CSRF-Token": self.csrf_token}

    def get(self, url, **kwargs):
        return self.client.get(url, **kwargs)

    def post(self, url, json=None):
        return self.client.post(url, json=json or {}, headers=self._headers())

    def delete(self, url):
        return self.client.delete(url, headers=self._headers())


@pytest.fixture
def login(app):
    def _login(user, password=PASSWORD):
        client = app.test_client()
        resp = client.post("/auth/login", json={"email": user.email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        csrf = client.get_cookie("csrf_token").value
        return AuthedClient(client, csrf, user.id)

    return _login
