import logging
from functools import wraps

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

import models

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A database call failed."""


def _store_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PyMongoError as e:
            logger.error("%s failed: %s", func.__name__, e)
            raise StoreError(str(e)) from e
    return wrapper


def _object_id(value):
    try:
        return ObjectId(str(value))
    except InvalidId:
        return value


class ReportStore:
    """Users, reports, rewards and collection tasks kept in MongoDB."""

    def __init__(self, db):
        self.db = db
        self.users = db["users"]
        self.reports = db["reports"]
        self.rewards = db["rewards"]
        self.transactions = db["transactions"]
        self.tasks = db["collected_wastes"]

    @_store_errors
    def ensure_indexes(self):
        self.users.create_index([("email", ASCENDING)], unique=True)
        self.reports.create_index([("created_at", DESCENDING)])

    @_store_errors
    def get_user_by_email(self, email):
        return self.users.find_one({"email": email})

    @_store_errors
    def create_user(self, email, name):
        user = models.new_user(email, name)
        result = self.users.insert_one(user)
        user["_id"] = result.inserted_id
        return user

    @_store_errors
    def create_report(self, user_id, location, waste_type, amount, image_url=None, verification_result=None):
        owner = _object_id(user_id)
        report = models.new_report(owner, location, waste_type, amount, image_url, verification_result)
        result = self.reports.insert_one(report)
        report["_id"] = result.inserted_id

        points = models.REPORT_REWARD_POINTS
        now = models.utcnow()
        self.rewards.update_one(
            {"user_id": owner},
            {"$inc": {"points": points},
             "$set": {"updated_at": now},
             "$setOnInsert": {"level": 1, "created_at": now}},
            upsert=True,
        )
        self.transactions.insert_one(
            models.new_transaction(owner, points, "Points earned for reporting waste")
        )
        return report

    @_store_errors
    def get_recent_reports(self, limit=10):
        return list(self.reports.find().sort("created_at", DESCENDING).limit(limit))

    @_store_errors
    def get_all_rewards(self):
        return list(self.rewards.find({}, {"points": 1}))

    @_store_errors
    def get_waste_collection_tasks(self, limit=20):
        return list(self.tasks.find().sort("date", DESCENDING).limit(limit))


def connect(config):
    """Connect to MongoDB using ``config`` and return a ready ``ReportStore``."""
    client = MongoClient(config["MONGO_URI"], serverSelectionTimeoutMS=5000)
    try:
        # Test the connection
        client.server_info()
    except PyMongoError as e:
        logger.error("Error connecting to MongoDB: %s", e)
        raise StoreError(str(e)) from e
    logger.info("Successfully connected to MongoDB")
    store = ReportStore(client[config["MONGO_DB_NAME"]])
    store.ensure_indexes()
    return store
