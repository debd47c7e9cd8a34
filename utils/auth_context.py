"""
Request principal: who is calling, resolved once per request from the
session cookie. Booking routes read it through ``current_user_id`` so the
engine itself reports a missing principal as NotAuthenticated.
"""
from functools import wraps
from flask import g
from models import db
from models.user import User
from security.session import get_session_from_request
from services.errors import NotAuthenticated

def load_current_user():
    g.user = None
    g.session = None

    sess = get_session_from_request()
    if sess is None:
        return

    user = db.session.get(User, sess.user_id)
    # a session outliving its account is not a login
    if user is None:
        return
    g.session = sess
    g.user = user

def current_user_id():
    user = getattr(g, "user", None)
    return user.id if user is not None else None

def login_required(fn):
    """Rejects anonymous calls with the same NOT_AUTHENTICATED body the booking API uses."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if current_user_id() is None:
            raise NotAuthenticated()
        return fn(*args, **kwargs)
    return wrapper
