import logging
from functools import wraps

from flask import flash, jsonify, redirect, request, session, url_for

from errors import AuthError
from models.user_model import User

logger = logging.getLogger(__name__)


def register_user(client, email, password, full_name) -> User:
    try:
        response = client.auth.sign_up({
            "email": email,
            "password": password,
            "options": {"data": {"full_name": full_name}}
        })
    except Exception as e:
        logger.warning("Sign-up failed for %s: %s", email, e)
        raise AuthError(str(e)) from e
    if response.user is None:
        raise AuthError("Sign-up was not accepted.")
    return User.from_auth(response.user)


def login_user(client, email, password) -> User:
    try:
        response = client.auth.sign_in_with_password({
            "email": email,
            "password": password
        })
    except Exception as e:
        logger.info("Sign-in rejected for %s: %s", email, e)
        raise AuthError("Invalid email or password") from e
    if response.user is None:
        raise AuthError("Invalid email or password")
    return User.from_auth(response.user)


def logout_user(client):
    try:
        client.auth.sign_out()
    except Exception as e:
        # session is cleared regardless
        logger.warning("Supabase sign-out failed: %s", e)


def remember_user(user: User):
    session["user_id"] = user.id
    session["email"] = user.email
    session["full_name"] = user.full_name


def current_user():
    user_id = session.get("user_id")
    if not user_id:
        return None
    return User(id=user_id, email=session.get("email"), full_name=session.get("full_name"))


def login_required(view):
    """Redirect pages (or 401 JSON endpoints) when nobody is signed in."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not session.get("user_id"):
            if request.path.startswith("/api/"):
                return jsonify({"error": "unauthorized"}), 401
            flash("Please log in first.", "warning")
            return redirect(url_for("web.login"))
        return view(*args, **kwargs)
    return wrapped
