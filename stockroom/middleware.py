"""Middleware for the auth cookie gate."""
from flask import g, redirect, request, current_app

# Paths served without the auth cookie besides the login page
OPEN_PATH_PREFIXES = ('/static/', '/favicon.ico', '/metrics')


def load_session_user():
    """
    Expose the acting username as g.username.

    The auth cookie holds the username itself; there is no server-side
    session to look up.
    """
    cookie_name = current_app.config['AUTH_COOKIE_NAME']
    g.username = request.cookies.get(cookie_name) or None


def is_open_path(path: str) -> bool:
    login_path = current_app.config['LOGIN_PATH']
    return path.startswith(login_path) or path.startswith(OPEN_PATH_PREFIXES)


def session_gate():
    """
    Redirect requests without the auth cookie to the login page.

    Registered as before_request; returning None lets the request through.
    """
    load_session_user()
    if is_open_path(request.path):
        return None
    if not g.username:
        return redirect(current_app.config['LOGIN_PATH'])
    return None
