import pytest
from flask_jwt_extended import create_access_token
from sqlalchemy import func, select

from core.config import Config
from core.extensions import db
from main import create_app
from models.cartModels import CartItem
from models.productModels import Products
from models.userModel import Users


class StorefrontTestConfig(Config):
    TESTING = True
    JWT_SECRET_KEY = "storefront-test-secret-key-long-enough-for-hs256"
    BCRYPT_LOG_ROUNDS = 4
    TRANSACTION_RETRIES = 5
    LOG_LEVEL = "WARNING"
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}


@pytest.fixture()
def app(tmp_path):
    class _Config(StorefrontTestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'storefront.db'}"

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture()
def session(app):
    return db.session


@pytest.fixture()
def client(app):
    return app.test_client()


def make_user(session, email="buyer@example.com", role="USER"):
    user = Users(email=email, password="not-a-real-hash", role=role)
    session.add(user)
    session.commit()
    return user.id


def make_product(session, stock=10, **overrides):
    fields = {
        "name": "Premium Headphones",
        "description": "Wireless headphones with noise cancellation",
        "price": 299.99,
        "is_connected_only": False,
        "stock_quantity": stock,
    }
    fields.update(overrides)
    product = Products(**fields)
    session.add(product)
    session.commit()
    return product.id


def stock_of(session, product_id):
    return session.execute(select(Products.stock_quantity).where(Products.id == product_id)).scalar_one()


def reserved_of(session, product_id):
    return session.execute(
        select(func.coalesce(func.sum(CartItem.quantity), 0)).where(CartItem.product_id == product_id)
    ).scalar_one()


def auth_headers(user_id, role="USER"):
    token = create_access_token(identity=str(user_id), additional_claims={"role": role})
    return {"Authorization": f"Bearer {token}"}
