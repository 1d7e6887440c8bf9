"""
Authentication service.

Validates username/password pairs against the `login` table and manages the
auth cookie that the session gate reads.
"""
import hmac
import logging
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from stockroom.models import Credential
from stockroom.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


def validate_login(session, username: str, password: str) -> str:
    """
    Check a username/password pair.

    Args:
        session: SQLAlchemy session
        username: submitted username
        password: submitted password (compared as plain text)

    Returns:
        str: the username, for the caller to keep as its acting identity

    Raises:
        AuthenticationError: unknown user, wrong password or lookup failure,
            all with the same message
    """
    try:
        credential = session.query(Credential).filter_by(username=username).one_or_none()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Credential lookup failed for {username!r}: {e}", exc_info=True)
        raise AuthenticationError()

    if credential is None or password is None:
        logger.info(f"Failed login for {username!r}")
        raise AuthenticationError()

    if not hmac.compare_digest(credential.password.encode('utf-8'), password.encode('utf-8')):
        logger.info(f"Failed login for {username!r}")
        raise AuthenticationError()

    logger.info(f"Successful login for {username!r}")
    return credential.username


def set_auth_cookie(response, username: str):
    """Attach the auth cookie (value = username) to a response."""
    response.set_cookie(
        current_app.config['AUTH_COOKIE_NAME'],
        username,
        max_age=current_app.config['AUTH_COOKIE_MAX_AGE'],
        path='/',
        httponly=True,
        samesite='Lax',
        secure=current_app.config.get('AUTH_COOKIE_SECURE', False),
    )
    return response


def clear_auth_cookie(response):
    """Remove the auth cookie. Safe to call when no cookie is set."""
    response.delete_cookie(
        current_app.config['AUTH_COOKIE_NAME'],
        path='/',
        httponly=True,
        samesite='Lax',
    )
    return response
