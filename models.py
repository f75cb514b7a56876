# models.py
# MongoDB document shapes for the waste reporting app, plus the helpers that
# build new documents and turn stored ones into what the pages display.
from datetime import datetime, timezone

from bson.objectid import ObjectId

DEFAULT_USER_NAME = "Anonymous User"
REPORT_REWARD_POINTS = 10

user_schema = {
    'email': 'str',  # User's email address (unique, lookup key)
    'name': 'str',  # Display name
    'created_at': 'datetime',
}

report_schema = {
    'user_id': 'str',  # Id of the reporting user
    'location': 'str',  # Free text or a formatted address from place search
    'waste_type': 'str',  # plastic, paper, glass, metal or organic
    'amount': 'str',  # Number plus unit, e.g. "2.5 kg"
    'image_url': 'str',  # Optional, preview data URL
    'verification_result': 'str',  # Optional, JSON of the verification result
    'status': 'str',  # "pending" until collected
    'created_at': 'datetime',
}

reward_schema = {
    'user_id': 'str',
    'points': 0,  # Integer, total points
    'level': 1,
    'created_at': 'datetime',
    'updated_at': 'datetime',
}

transaction_schema = {
    'user_id': 'str',
    'type': 'str',  # "earned_report"
    'amount': 0,  # Points for this transaction
    'description': 'str',
    'date': 'datetime',
}

collection_task_schema = {
    'location': 'str',
    'waste_type': 'str',
    'amount': 'str',  # Leading number is the collected amount
    'status': 'str',
    'date': 'datetime',
}


def utcnow():
    return datetime.now(timezone.utc)


def new_user(email, name=DEFAULT_USER_NAME):
    return {'email': email, 'name': name, 'created_at': utcnow()}


def new_report(user_id, location, waste_type, amount, image_url=None, verification_result=None):
    return {
        'user_id': user_id,
        'location': location,
        'waste_type': waste_type,
        'amount': amount,
        'image_url': image_url,
        'verification_result': verification_result,
        'status': 'pending',
        'created_at': utcnow(),
    }


def new_transaction(user_id, points, description):
    return {
        'user_id': user_id,
        'type': 'earned_report',
        'amount': points,
        'description': description,
        'date': utcnow(),
    }


def _id_str(value):
    if isinstance(value, ObjectId):
        return str(value)
    return value


def format_user(doc):
    if not doc:
        return None
    return {'id': _id_str(doc.get('_id')), 'email': doc['email'], 'name': doc.get('name', DEFAULT_USER_NAME)}


def format_report(doc):
    """Project a stored report onto the row shown in the recent reports table."""
    created_at = doc.get('created_at')
    return {
        'id': _id_str(doc.get('_id')),
        'location': doc.get('location', ''),
        'wasteType': doc.get('waste_type', ''),
        'amount': doc.get('amount', ''),
        'createdAt': created_at.strftime('%Y-%m-%d') if created_at else '',
    }
