"""Shared fixtures: an app backed by mongomock, users per role and their bearer headers."""

from unittest.mock import MagicMock

import mongomock
import pytest

from envirotrack.app import create_app
from envirotrack.config.database import db_instance
from envirotrack.models.user import User
from envirotrack.models.xero_token import XeroToken
from envirotrack.services import mailer
from envirotrack.services.xero_client import XeroClient

TEST_CONFIG = {
    'TESTING': True,
    'SECRET_KEY': 'test-secret-key',
    'JWT_SECRET': 'test-jwt-secret',
    'JWT_EXPIRE_DAYS': 7,
    'MONGODB_DB': 'envirotrack_test',
    'FRONTEND_URL': 'http://frontend.test',
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture
def app():
    app = create_app({**TEST_CONFIG, 'MONGO_CLIENT': mongomock.MongoClient()})
    yield app
    db_instance.close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return db_instance.get_db()


@pytest.fixture
def make_user(app):
    """Factory creating a saved user; role defaults to employee."""
    counter = {'n': 0}

    def _make(role='employee', **fields):
        counter['n'] += 1
        user = User(
            email=fields.pop('email', f"{role}{counter['n']}@example.com"),
            first_name=fields.pop('first_name', role.title()),
            last_name=fields.pop('last_name', f"User{counter['n']}"),
            role=role,
            **fields
        )
        user.set_password('password123')
        return user.save()

    return _make


@pytest.fixture
def token_for(app):
    def _token(user):
        with app.app_context():
            return user.generate_auth_token()
    return _token


@pytest.fixture
def headers_for(token_for):
    def _headers(user):
        return {'Authorization': f'Bearer {token_for(user)}'}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user('admin', first_name='Ada', last_name='Admin')


@pytest.fixture
def manager(make_user):
    return make_user('manager', first_name='Morgan', last_name='Manager')


@pytest.fixture
def employee(make_user):
    return make_user('employee', first_name='Eli', last_name='Employee')


@pytest.fixture
def admin_headers(admin, headers_for):
    return headers_for(admin)


@pytest.fixture
def manager_headers(manager, headers_for):
    return headers_for(manager)


@pytest.fixture
def employee_headers(employee, headers_for):
    return headers_for(employee)


def mock_response(status_code=200, body=None, text=''):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.text = text
    return response


@pytest.fixture
def xero_http(app):
    """Mocked requests session installed behind the app's Xero client."""
    http = MagicMock()
    app.extensions['xero_client'] = XeroClient('client-id', 'client-secret', 'http://api.test/api/xero/callback',
                                               http=http)
    return http


@pytest.fixture
def xero_connected(app):
    return XeroToken.store({
        'access_token': 'access-token',
        'refresh_token': 'refresh-token',
        'expires_in': 1800,
        'token_type': 'Bearer',
    }, tenant_id='tenant-1')


@pytest.fixture
def outbox(monkeypatch):
    """Messages the app tried to email, as dicts of to/subject/text/html."""
    sent = []

    def _send(to_email, subject, text_body, html_body=None):
        sent.append({'to': to_email, 'subject': subject, 'text': text_body, 'html': html_body})
        return True, ''

    monkeypatch.setattr(mailer, 'send_email', _send)
    return sent
