import base64
from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from models import db, Customer, Item, Product, Profile


@pytest.fixture()
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "AUTH_MODE": "basic",
        "LOG_DIR": None,
        "RESTOCK_THRESHOLD": 2,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def _make_profile(email, password="secret"):
    profile = Profile(
        email=email,
        full_name=email.split("@")[0],
        password_hash=generate_password_hash(password, method="pbkdf2:sha256:1000"),
    )
    db.session.add(profile)
    db.session.commit()
    return profile


def auth_headers(email, password="secret"):
    token = base64.b64encode(f"{email}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture()
def seller(app):
    return _make_profile("seller@example.com")


@pytest.fixture()
def other_seller(app):
    return _make_profile("other@example.com")


@pytest.fixture()
def headers(seller):
    return auth_headers(seller.email)


@pytest.fixture()
def other_headers(other_seller):
    return auth_headers(other_seller.email)


@pytest.fixture()
def make_item(app):
    def _make(owner, **overrides):
        fields = dict(
            user_id=owner.id,
            name="Nike Air Max 90",
            sku="NK-90",
            category="Shoes",
            purchase_price=10.0,
            purchase_location="Goodwill",
            purchase_date=date(2024, 1, 2),
            quantity_purchased=5,
            quantity_on_hand=5,
            quantity_sold=0,
        )
        fields.update(overrides)
        item = Item(**fields)
        db.session.add(item)
        db.session.commit()
        return item
    return _make


@pytest.fixture()
def item(seller, make_item):
    return make_item(seller)


@pytest.fixture()
def customer(app):
    c = Customer(full_name="Jamie Buyer", email="jamie@example.com")
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture()
def product(seller, item):
    p = Product(
        user_id=seller.id,
        item_id=item.id,
        title="Nike Air Max 90",
        slug="nike-air-max-90",
        price=45.0,
        sku=item.sku,
        is_published=True,
    )
    db.session.add(p)
    db.session.commit()
    return p
