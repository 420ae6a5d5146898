import os

import pytest
from sqlalchemy.pool import NullPool, StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SEED_CATALOG_ON_STARTUP", "0")

from app import create_app
from extensions import db


TEST_CONFIG = {
    "TESTING": True,
    "RATELIMIT_ENABLED": False,
    "LEDGER_LOCK_REDIS_URL": None,
    "SEED_CATALOG_ON_STARTUP": False,
    "SETTLEMENT_API_KEY": "test-settlement-key",
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "SQLALCHEMY_ENGINE_OPTIONS": {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    },
}


@pytest.fixture()
def app():
    app = create_app(dict(TEST_CONFIG))
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite so worker threads get their own connections."""
    app = create_app({
        **TEST_CONFIG,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'race.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {
            "connect_args": {"check_same_thread": False, "timeout": 30},
            "poolclass": NullPool,
        },
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
