from datetime import datetime, timezone

from bson.objectid import ObjectId

import models


def test_format_report():
    oid = ObjectId()
    doc = models.new_report("u1", "Harbour", "glass", "4 kg")
    doc["_id"] = oid
    doc["created_at"] = datetime(2024, 3, 9, 23, 59, tzinfo=timezone.utc)
    assert models.format_report(doc) == {
        "id": str(oid), "location": "Harbour", "wasteType": "glass", "amount": "4 kg", "createdAt": "2024-03-09",
    }


def test_format_user():
    assert models.format_user(None) is None
    assert models.format_user({"_id": "x", "email": "a@b.c"}) == {"id": "x", "email": "a@b.c", "name": "Anonymous User"}


def test_new_user_defaults():
    user = models.new_user("a@b.c")
    assert user["name"] == models.DEFAULT_USER_NAME
    assert user["created_at"].tzinfo is not None
