from flask import session

import models

SESSION_KEY = "user_email"


def current_email():
    return session.get(SESSION_KEY)


def login_user(email):
    email = (email or "").strip()
    if not email:
        return False
    session[SESSION_KEY] = email
    return True


def logout_user():
    session.pop(SESSION_KEY, None)


def resolve_user(store, email):
    """Return the user for ``email``, creating one on first sight.

    ``None`` means logged out; callers redirect to the login page.
    """
    if not email:
        return None
    user = store.get_user_by_email(email)
    if not user:
        user = store.create_user(email, models.DEFAULT_USER_NAME)
    return models.format_user(user)
