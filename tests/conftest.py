from datetime import datetime, timedelta, timezone
from io import BytesIO
from itertools import count

import pytest
from PIL import Image
from werkzeug.datastructures import FileStorage

from application import create_app

VALID_REPLY = '{"wasteType":"plastic","quantity":"2.5 kg","confidence":0.95}'


class FakeStore:
    """In-memory stand-in for ``db.ReportStore``."""

    def __init__(self):
        self.users = []
        self.reports = []
        self.rewards = []
        self.tasks = []
        self.created_reports = []
        self.fail_with = None
        self._ids = count(1)
        self._clock = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    def _check(self):
        if self.fail_with:
            raise self.fail_with

    def _next_time(self):
        self._clock += timedelta(days=1)
        return self._clock

    def get_user_by_email(self, email):
        self._check()
        return next((u for u in self.users if u["email"] == email), None)

    def create_user(self, email, name):
        self._check()
        user = {"_id": "u%d" % next(self._ids), "email": email, "name": name}
        self.users.append(user)
        return user

    def create_report(self, user_id, location, waste_type, amount, image_url=None, verification_result=None):
        self._check()
        report = {
            "_id": "r%d" % next(self._ids),
            "user_id": user_id,
            "location": location,
            "waste_type": waste_type,
            "amount": amount,
            "image_url": image_url,
            "verification_result": verification_result,
            "created_at": self._next_time(),
        }
        self.reports.insert(0, report)
        self.created_reports.append(report)
        return report

    def get_recent_reports(self, limit=10):
        self._check()
        return self.reports[:limit]

    def get_all_rewards(self):
        self._check()
        return list(self.rewards)

    def get_waste_collection_tasks(self, limit=20):
        self._check()
        return self.tasks[:limit]


class FakeClassifier:

    def __init__(self, reply=VALID_REPLY, configured=True):
        self.reply = reply
        self.configured = configured
        self.calls = []

    def classify(self, image_b64, mime_type):
        self.calls.append((image_b64, mime_type))
        if isinstance(self.reply, Exception):
            raise self.reply
        if callable(self.reply):
            return self.reply()
        return self.reply

    def check_api_key(self):
        return self.configured


class Notes(list):
    """Collects ``notify`` calls."""

    def __call__(self, message, category):
        self.append((category, message))

    def messages(self, category=None):
        return [m for c, m in self if category is None or c == category]


def make_png(size=(4, 4), color="green"):
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, "PNG")
    return buf.getvalue()


def make_upload(data=None, filename="waste.png", content_type="image/png"):
    return FileStorage(stream=BytesIO(make_png() if data is None else data),
                       filename=filename, content_type=content_type)


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def notes():
    return Notes()


@pytest.fixture
def app(store, classifier):
    app = create_app(
        {"TESTING": True, "SECRET_KEY": "test", "GOOGLE_MAPS_API_KEY": "", "GEMINI_API_KEY": "test-key"},
        store=store,
        classifier=classifier,
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in(client):
    client.post("/login", data={"email": "ada@example.com"})
    return client

