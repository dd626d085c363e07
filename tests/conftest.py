import uuid
from datetime import date, datetime, time, timedelta
from types import SimpleNamespace

import pytest

from app import create_app
from models import db
from models._common import utcnow
from models.course import Course, Lesson
from models.enrollment import Enrollment
from models.slot import Slot
from models.specialist import Specialist
from models.user import Role, User
from security.rbac import ADMIN, SPECIALIST, STUDENT
from security.session import create_session
from utils.seed import seed_roles


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
        "SEED_ROLES_ON_STARTUP": False,
        # generous ceilings; rate limit tests tighten them explicitly
        "RATE_LIMITS": {},
        "DEFAULT_RATE_LIMIT": {"max_requests": 1000, "window_seconds": 60},
    })
    with app.app_context():
        db.create_all()
        seed_roles()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(app):
    def _make(role=STUDENT, email=None):
        with app.app_context():
            user = User(email=email or f"{uuid.uuid4().hex[:10]}@example.com")
            user.roles.append(Role.query.filter_by(name=role).one())
            db.session.add(user)
            db.session.commit()
            user_id = user.id
            token = create_session(user_id)
        return SimpleNamespace(id=user_id, token=token, headers=bearer(token))
    return _make


@pytest.fixture
def student(make_user):
    return make_user(STUDENT)


@pytest.fixture
def admin(make_user):
    return make_user(ADMIN)


@pytest.fixture
def make_specialist(app, make_user):
    def _make():
        account = make_user(SPECIALIST)
        with app.app_context():
            specialist = Specialist(user_id=account.id, full_name="Dr. Test", specialty="Nutrition")
            db.session.add(specialist)
            db.session.commit()
            specialist_id = specialist.id
        return SimpleNamespace(id=specialist_id, account=account)
    return _make


@pytest.fixture
def make_slot(app):
    def _make(specialist_id, starts_at=None):
        starts_at = starts_at or datetime.combine(date.today() + timedelta(days=3), time(10, 0))
        with app.app_context():
            slot = Slot(
                specialist_id=specialist_id,
                slot_date=starts_at.date(),
                slot_time=starts_at.time().replace(microsecond=0),
            )
            db.session.add(slot)
            db.session.commit()
            return slot.id
    return _make


@pytest.fixture
def make_course(app):
    def _make(lessons=3, lessons_count=None, title="Intro course"):
        with app.app_context():
            course = Course(title=title, lessons_count=lessons_count)
            db.session.add(course)
            db.session.flush()
            for i in range(lessons):
                db.session.add(Lesson(course_id=course.id, title=f"Lesson {i + 1}", order_index=i))
            db.session.commit()
            return course.id
    return _make


@pytest.fixture
def set_enrollment_status(app):
    def _set(enrollment_id, status):
        with app.app_context():
            enrollment = db.session.get(Enrollment, enrollment_id)
            enrollment.status = status
            db.session.commit()
    return _set


def soon(hours: int) -> datetime:
    return (utcnow() + timedelta(hours=hours)).replace(second=0, microsecond=0)
