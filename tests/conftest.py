import os
import shutil

import pytest

# Add project root to path so we can import the modules
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from accesslog_router import RouterConfig
from app import create_app


FIXTURES_DIR = os.path.join(os.path.dirname(__file__), 'fixtures')


@pytest.fixture
def prefix(tmp_path):
    """An empty directory standing in for /home/httpd."""
    path = tmp_path / 'httpd'
    path.mkdir()
    return str(path)


@pytest.fixture
def router_config(prefix):
    return RouterConfig(prefix=prefix, suffix='')


@pytest.fixture
def sample_log_file(tmp_path):
    """Copy the fixture access log to a temp location and return its path."""
    src = os.path.join(FIXTURES_DIR, 'sample_access.log')
    dest = tmp_path / 'access_log'
    shutil.copy2(src, dest)
    return str(dest)


@pytest.fixture
def sample_lines(sample_log_file):
    with open(sample_log_file, encoding='utf-8') as f:
        return f.readlines()


@pytest.fixture
def app(prefix, sample_log_file):
    """Create a test Flask app with TESTING mode."""
    app, socketio = create_app(config={
        'TESTING': True,
        'ACCESSLOG_FILE': sample_log_file,
        'ACCESSLOG_PREFIX': prefix,
        'ACCESSLOG_SUFFIX': '',
        'ACCESSLOG_CREATE_PARENTS': True,
        'MONITOR_PASSWORD': 'testpassword',
        'RECENT_ENTRIES': 100,
        'SECRET_KEY': 'test-secret-key',
    })
    return app


@pytest.fixture
def socketio(app):
    """Return the SocketIO instance."""
    return app.socketio


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def authenticated_client(client):
    """A test client that is already logged in."""
    with client.session_transaction() as sess:
        sess['authenticated'] = True
    return client
