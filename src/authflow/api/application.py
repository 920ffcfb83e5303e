"""
Application Blueprint.

Routes:
- GET  /login  - Login form
- POST /login  - Credential check, issues the session cookie
- GET  /logout - Clears the session
- GET  /       - Landing page for logged-in users
"""
import logging
from functools import wraps

from flask import (
    Blueprint, flash, g, redirect, render_template, request, session, url_for
)

from ..models import User

logger = logging.getLogger(__name__)

application_bp = Blueprint('application', __name__)

SESSION_KEY_EMAIL = 'email'


def require_login(f):
    """Decorator requiring an authenticated session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        email = session.get(SESSION_KEY_EMAIL)
        if not email:
            return redirect(url_for('application.login'))

        user = User.find_by_email(email)
        if not user:
            session.pop(SESSION_KEY_EMAIL, None)
            return redirect(url_for('application.login'))

        g.user = user
        return f(*args, **kwargs)

    return decorated_function


# ============================================================================
# Login / Logout
# ============================================================================

@application_bp.route('/login', methods=['GET'])
def login():
    """Login page."""
    if session.get(SESSION_KEY_EMAIL):
        return redirect(url_for('application.index'))
    return render_template('login.html', email='', errors={})


@application_bp.route('/login', methods=['POST'])
def authenticate():
    """Check credentials and start a session."""
    email = request.form.get('email', '').strip()
    password = request.form.get('password', '')

    errors = {}
    if not email:
        errors['email'] = 'This field is required'
    if not password:
        errors['password'] = 'This field is required'

    user = None
    if not errors:
        user = User.authenticate(email, password)
        if user is None:
            errors['form'] = 'Invalid email or password'

    if errors:
        logger.warning(f"Failed login attempt: {email or '<no email>'}")
        return render_template('login.html', email=email, errors=errors), 400

    session[SESSION_KEY_EMAIL] = user.email
    logger.info(f"Login: {user.email}")
    return redirect(url_for('application.index'))


@application_bp.route('/logout')
def logout():
    """Logout."""
    email = session.get(SESSION_KEY_EMAIL)
    session.clear()
    if email:
        logger.info(f"Logout: {email}")
    flash("You've been logged out", 'info')
    return redirect(url_for('application.login'))


# ============================================================================
# Landing page
# ============================================================================

@application_bp.route('/')
@require_login
def index():
    return render_template('index.html', user=g.user)
