import os
import tempfile

os.environ.pop("DATABASE_URL", None)
os.environ["SECRET_KEY"] = "test-secret"
os.environ["TELEGRAM_BOT_TOKEN"] = "123456:TEST-TOKEN"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="cryptocraft-uploads-")

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from schemas import User

BOT_TOKEN = os.environ["TELEGRAM_BOT_TOKEN"]

SHIPPING_ADDRESS = {
    "city": "Киев",
    "post_office": "Отделение №5",
    "recipient_name": "Иван Петров",
    "phone_number": "+380501234567",
}


@pytest.fixture
def mongo(monkeypatch):
    db = mongomock.MongoClient()["cryptocraft_test"]
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def client(mongo):
    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def make_user(mongo):
    def _make(name="Alice", role="user", verification_level="NONE"):
        user_id = database.create_document("user", User(name=name, role=role, verification_level=verification_level))
        return database.get_document("user", user_id)
    return _make


@pytest.fixture
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {main.session_service.issue(user['id'])}"}
    return _headers
