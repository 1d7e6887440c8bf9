"""
Authentication blueprint.
Handles username/password login and logout through the auth cookie.
"""
import logging
from typing import Union
from flask import Blueprint, render_template, request, redirect, url_for, flash, g, jsonify, make_response, Response
from stockroom.database import get_session
from stockroom.exceptions import AuthenticationError
from stockroom.services.auth_service import validate_login, set_auth_cookie, clear_auth_cookie

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def _credentials_from_request():
    if request.is_json:
        data = request.get_json(silent=True) or {}
    else:
        data = request.form
    return (data.get('username') or '').strip(), data.get('password') or ''


@auth_bp.route('/login', methods=['GET', 'POST'])
def login() -> Union[str, Response]:
    """Login page - validates username + password against the login table."""
    if request.method == 'GET':
        if g.get('username'):
            return redirect(url_for('catalog.list_products'))
        return render_template('auth/login.html', username='', logged_out=request.args.get('logged_out'))

    username, password = _credentials_from_request()

    try:
        username = validate_login(get_session(), username, password)
    except AuthenticationError as e:
        if request.is_json:
            return jsonify(e.to_dict()), e.status_code
        return render_template('auth/login.html', username=username, error=e.message), e.status_code

    if request.is_json:
        response = make_response(jsonify({'status': 'ok', 'username': username}))
    else:
        flash(f'Welcome back, {username}!', 'success')
        response = redirect(url_for('catalog.list_products'))
    return set_auth_cookie(response, username)


@auth_bp.route('/logout', methods=['GET', 'POST'])
def logout() -> Response:
    """Clear the auth cookie. Works whether or not anyone is logged in."""
    if g.get('username'):
        logger.info(f"Logout for {g.username!r}")
    response = redirect(url_for('auth.login', logged_out='1'))
    return clear_auth_cookie(response)
