import hmac
import os
from functools import wraps

from flask import Blueprint, abort, current_app, redirect, render_template, request, session, url_for

from .errors import ConfigurationError

bp = Blueprint('main', __name__)


def _widget():
    widget = current_app.extensions.get('topriders')
    if widget is None:
        abort(503)
    return widget


def _ensure_started(widget) -> None:
    if widget.initialized:
        return
    try:
        widget.initialize()
    except ConfigurationError:
        current_app.logger.exception("Top riders widget could not start")
        abort(500)


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not session.get('logged_in'):
            if request.path.startswith('/api/'):
                return {'error': 'login required'}, 401
            return redirect(url_for('main.index'))
        return view(*args, **kwargs)
    return wrapped


def _credentials_match(username: str, password: str) -> bool:
    expected_user = current_app.config.get('TOPRIDERS_USERNAME') or ''
    expected_pass = current_app.config.get('TOPRIDERS_PASSWORD') or ''
    if not expected_user or not expected_pass:
        return False
    # Compare both fields even when the first differs
    user_ok = hmac.compare_digest(username.encode(), expected_user.encode())
    pass_ok = hmac.compare_digest(password.encode(), expected_pass.encode())
    return user_ok and pass_ok


@bp.route('/')
def index():
    if session.get('logged_in'):
        return redirect(url_for('main.standings'))
    return render_template('login.html', title='Login')


@bp.route('/login', methods=['POST'])
def login():
    username = request.form.get('username', '')
    password = request.form.get('password', '')
    if _credentials_match(username, password):
        session.clear()
        session['logged_in'] = True
        current_app.logger.info("Login succeeded")
        return redirect(url_for('main.standings'))
    current_app.logger.warning("Login rejected")
    return 'Invalid login.', 401


@bp.route('/logout')
def logout():
    session.clear()
    return redirect(url_for('main.index'))


@bp.route('/standings')
@login_required
def standings():
    widget = _widget()
    _ensure_started(widget)
    target = widget.target
    return render_template(
        'standings.html',
        title=current_app.config.get('STANDINGS_TITLE', 'League Standings'),
        container_id=widget.config.container_selector.lstrip('#'),
        widget_html=target.html if target is not None else '',
        sheet_embed_url=widget.config.sheet_url or None,
    )


@bp.route('/standings/refresh', methods=['POST'])
@login_required
def standings_refresh():
    widget = _widget()
    if widget.initialized:
        widget.retry()
    return redirect(url_for('main.standings'))


@bp.route('/api/top-riders')
@login_required
def top_riders_status():
    widget = _widget()
    _ensure_started(widget)
    return widget.status()


@bp.route('/api/top-riders/refresh', methods=['POST'])
@login_required
def top_riders_refresh():
    """Manual retry: re-run the full pipeline and report the new state."""
    widget = _widget()
    _ensure_started(widget)
    widget.retry()
    return widget.status()


@bp.route('/api/top-riders/signal', methods=['POST'])
@login_required
def top_riders_signal():
    """Page lifecycle signals: ``{"hidden": bool}`` and/or ``{"online": bool}``."""
    payload = request.get_json(silent=True) or {}
    widget = _widget()
    if 'hidden' in payload:
        widget.on_visibility_change(bool(payload['hidden']))
    if 'online' in payload:
        if payload['online']:
            widget.on_online()
        else:
            widget.on_offline()
    return {'status': 'ok', 'state': widget.state.value}


@bp.route('/health/top-riders')
def health_top_riders():
    """Widget state, cache statistics and recent error counts.

    Always returns HTTP 200 with a JSON body.
    """
    widget = current_app.extensions.get('topriders')
    if widget is None:
        return {'status': 'not_configured'}
    body = {
        'status': 'ok',
        'state': widget.state.value,
        'initialized': widget.initialized,
        'cache': widget.cache.stats(),
        'errors': widget.error_log.stats(),
        'health': widget.error_log.health_status(),
    }
    store_health = getattr(widget.cache.store, 'health', None)
    if callable(store_health) and os.environ.get('DATABASE_URL'):
        body['database'] = store_health()
    return body
