"""
Shared test fixtures.

The app module configures itself from the environment at import time, so the
database URL is pinned to in-memory sqlite before it is imported.
"""

import os
import sys
from datetime import date
from pathlib import Path

import pytest

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("SECRET_KEY", "test-secret")

sys.path.insert(0, str(Path(__file__).parent.parent))

import app as app_module  # noqa: E402
from models import db, User  # noqa: E402

TODAY = date(2024, 3, 15)


@pytest.fixture
def flask_app(monkeypatch):
    app_module.app.config.update(TESTING=True)
    monkeypatch.setattr(app_module, "today_local", lambda: TODAY)
    with app_module.app.app_context():
        db.drop_all()
        db.create_all()
        yield app_module.app
        db.session.remove()


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


def make_user(username, password="secret", display_name=None):
    user = User(username=username, display_name=display_name)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def user(flask_app):
    return make_user("ruth", display_name="Ruth")


@pytest.fixture
def auth_client(client, user):
    with client.session_transaction() as sess:
        sess["user_id"] = user.id
    return client
