#!/usr/bin/env python3
"""
Access Log Monitor - follow a combined access log, route it into
per-domain log files and report routing activity over HTTP and SocketIO.
"""

import os
import secrets
import subprocess
import sys
from collections import Counter, deque
from functools import wraps
from hmac import compare_digest

from flask import Flask, request, session, jsonify, current_app
from flask_socketio import SocketIO, emit

from accesslog_router import DEFAULT_PREFIX, DISCARDED, ROUTED, RouterConfig
from demux import configure_logging, env_flag, filter_suffix, process_line

DEFAULT_ACCESS_LOG = '/var/log/httpd/access_log'


def detect_access_log_path():
    """Detect the combined access log path for the current OS."""
    env_path = os.environ.get('ACCESSLOG_FILE')
    if env_path:
        return env_path
    # RHEL/CentOS/Fedora use /var/log/httpd, Debian/Ubuntu /var/log/apache2
    for candidate in (DEFAULT_ACCESS_LOG, '/var/log/apache2/access.log'):
        if os.path.exists(candidate):
            return candidate
    return DEFAULT_ACCESS_LOG


def create_app(config=None):
    """Application factory for creating Flask app instances."""
    app = Flask(__name__)

    # Secret key
    if config and config.get('SECRET_KEY'):
        app.secret_key = config['SECRET_KEY']
    elif os.environ.get('SECRET_KEY'):
        app.secret_key = os.environ['SECRET_KEY']
    else:
        print("WARNING: No SECRET_KEY set, generating random key (sessions won't persist across restarts)")
        app.secret_key = secrets.token_hex(32)

    # Configuration from environment, overridable by config dict
    app.config['ACCESSLOG_FILE'] = detect_access_log_path()
    app.config['ACCESSLOG_PREFIX'] = os.environ.get('ACCESSLOG_PREFIX') or DEFAULT_PREFIX
    app.config['ACCESSLOG_SUFFIX'] = os.environ.get('ACCESSLOG_SUFFIX', '')
    app.config['ACCESSLOG_CREATE_PARENTS'] = env_flag(os.environ.get('ACCESSLOG_CREATE_PARENTS'))
    app.config['MONITOR_PASSWORD'] = os.environ.get('MONITOR_PASSWORD', '')
    app.config['RECENT_ENTRIES'] = int(os.environ.get('RECENT_ENTRIES', '200'))
    app.config['HOST'] = os.environ.get('HOST', '127.0.0.1')
    app.config['PORT'] = int(os.environ.get('PORT', '8080'))

    # Apply config overrides
    if config:
        app.config.update(config)

    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

    # Per-app state
    app.router_config = RouterConfig(
        prefix=app.config['ACCESSLOG_PREFIX'],
        suffix=filter_suffix(app.config['ACCESSLOG_SUFFIX']),
        create_parents=app.config['ACCESSLOG_CREATE_PARENTS'],
    )
    app.recent_entries = deque(maxlen=app.config['RECENT_ENTRIES'])
    app.domain_counts = Counter()
    app.stats = Counter()

    # SocketIO
    socketio = SocketIO(app, async_mode='threading')
    app.socketio = socketio

    # --- Routes ---

    def login_required(f):
        """Decorator to require authentication."""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not session.get('authenticated'):
                return jsonify({'error': 'authentication required'}), 401
            return f(*args, **kwargs)
        return decorated_function

    @app.route('/login', methods=['POST'])
    def login():
        """Start an authenticated session."""
        payload = request.get_json(silent=True) or request.form
        submitted = str(payload.get('password', ''))
        password = current_app.config['MONITOR_PASSWORD']
        if password and compare_digest(submitted, password):
            session['authenticated'] = True
            return jsonify({'status': 'ok'})
        return jsonify({'error': 'Invalid password'}), 401

    @app.route('/logout')
    def logout():
        """Log out the user."""
        session.pop('authenticated', None)
        return jsonify({'status': 'ok'})

    @app.route('/api/domains')
    @login_required
    def get_domains():
        """API endpoint to get routed domains and their entry counts."""
        counts = current_app.domain_counts
        return jsonify({
            'domains': [
                {'domain': domain, 'entries': counts[domain]}
                for domain in sorted(counts)
            ]
        })

    @app.route('/api/stats')
    @login_required
    def get_stats():
        """API endpoint to get routing outcome counts."""
        router_config = current_app.router_config
        return jsonify({
            'stats': dict(current_app.stats),
            'prefix': router_config.prefix,
            'suffix': router_config.suffix,
            'source': current_app.config['ACCESSLOG_FILE'],
        })

    @app.route('/api/recent')
    @login_required
    def get_recent():
        """API endpoint to get the most recent routing events."""
        return jsonify({'entries': list(current_app.recent_entries)})

    @socketio.on('connect')
    def handle_connect():
        """Handle client connection."""
        if not session.get('authenticated'):
            return False
        emit('connected', {'status': 'ok'})

    return app, socketio


def record_result(app, result):
    """Fold one routing outcome into the app state; return it as an event."""
    app.stats[result.status] += 1
    event = {'status': result.status}
    if result.status == ROUTED:
        app.domain_counts[result.domain] += 1
    if result.domain:
        event['domain'] = result.domain
        event['path'] = result.path
    if result.timestamp:
        event['timestamp'] = result.timestamp._asdict()
    if result.error is not None:
        event['error'] = str(result.error)
    app.recent_entries.append(event)
    return event


def follow_access_log(app, socketio):
    """Background task to follow the access log and route new entries."""
    log_file = app.config['ACCESSLOG_FILE']

    if not os.path.exists(log_file) or not os.access(log_file, os.R_OK):
        print(f"ERROR: Cannot follow access log: {log_file}")
        return

    try:
        process = subprocess.Popen(
            ['tail', '-n', '0', '-F', log_file],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors='surrogateescape',
        )
    except OSError as e:
        print(f"Error following access log: {e}")
        return

    try:
        for line in iter(process.stdout.readline, ''):
            result = process_line(line, app.router_config)
            if result is None:
                app.stats['failed'] += 1
                continue
            event = record_result(app, result)
            if result.status != DISCARDED:
                socketio.emit('entry', event)
    except Exception as e:
        print(f"Error following access log: {e}")
    finally:
        process.terminate()
        process.wait()
        process.stdout.close()


if __name__ == '__main__':
    configure_logging()
    app, socketio = create_app()

    print("Access Log Monitor starting...")

    # Validate required configuration
    if not app.config['MONITOR_PASSWORD']:
        print("ERROR: MONITOR_PASSWORD environment variable is required")
        sys.exit(1)

    print(f"Access log: {app.config['ACCESSLOG_FILE']}")
    print(f"Routing into: {app.router_config.prefix} (suffix {app.router_config.suffix!r})")

    # Start the log following thread
    socketio.start_background_task(follow_access_log, app, socketio)

    host = app.config['HOST']
    port = app.config['PORT']
    print(f"Listening on http://{host}:{port}")
    socketio.run(app, host=host, port=port, debug=False, allow_unsafe_werkzeug=True)
