import os

os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from app.config import TestConfig
from app.extensions import db as _db
from app.models import Brand, Category, Discount, University, UniversityDomain, User
from app.tasks.broker import get_broker

# Wednesday
NOW = datetime(2026, 3, 4, 10, 30)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()
    get_broker().flush_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def broker():
    broker = get_broker()
    broker.flush_all()
    return broker


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="student", password=None, **kwargs):
        counter["n"] += 1
        defaults = {
            "full_name": f"Test User {counter['n']}",
            "email": f"user{counter['n']}@example.com",
            "role": role,
            "is_email_verified": True,
            "verification_status": "verified" if role == "student" else "unverified",
        }
        defaults.update(kwargs)
        user = User(**defaults)
        if password:
            user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_brand(db):
    def _make(name="Cafe Uno", rating=Decimal("4.00")):
        brand = Brand(name=name, rating=rating)
        db.session.add(brand)
        db.session.commit()
        return brand

    return _make


@pytest.fixture
def brand(make_brand):
    return make_brand()


@pytest.fixture
def category(db):
    category = Category(name="Food", slug="food")
    db.session.add(category)
    db.session.commit()
    return category


@pytest.fixture
def university(db):
    university = University(name="Westminster International University in Tashkent")
    db.session.add(university)
    db.session.commit()
    return university


@pytest.fixture
def university_domain(db, university):
    domain = UniversityDomain(domain="@wiut.uz", university_id=university.id, auto_verify=True)
    db.session.add(domain)
    db.session.commit()
    return domain


@pytest.fixture
def make_discount(db, brand):
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        defaults = {
            "brand_id": brand.id,
            "title": f"Deal {counter['n']}",
            "slug": f"deal-{counter['n']}",
            "discount_type": "percentage",
            "discount_value": Decimal("20"),
            "start_date": NOW - timedelta(days=10),
            "end_date": NOW + timedelta(days=30),
            "approval_status": "approved",
            "is_active": True,
            "usage_limit_type": "one_time",
            "active_days_of_week": [],
            "university_ids": [],
        }
        defaults.update(kwargs)
        discount = Discount(**defaults)
        db.session.add(discount)
        db.session.commit()
        return discount

    return _make


@pytest.fixture
def student(make_user):
    return make_user()


@pytest.fixture
def partner(make_user, brand):
    return make_user(role="partner", brand_id=brand.id)


@pytest.fixture
def admin(make_user):
    return make_user(role="admin")


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _headers
