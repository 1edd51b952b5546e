import time
from urllib.parse import urlparse

import pytest
import requests

from app import create_app
from config import TestingConfig

STAFF_TOKEN = 'staff-token'
PORTAL_TOKEN = 'portal-token'


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError('No JSON body')
        return self._payload


class FakeBackend:
    """Stands in for the requests session the API client talks through.

    Routes are keyed by (METHOD, path below /api). A route answers with a
    data block (wrapped in a success envelope), a (status, payload) tuple,
    an exception instance to raise, or a callable taking the call record.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, response):
        self.routes[(method.upper(), path)] = response

    def ok(self, method, path, data=None, message='OK'):
        self.add(method, path, (200, {'success': True, 'message': message, 'data': data or {}}))

    def fail(self, method, path, status=400, message='Request failed'):
        self.add(method, path, (status, {'success': False, 'message': message}))

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlparse(url).path
        if path.startswith('/api'):
            path = path[len('/api'):]
        call = {'method': method.upper(), 'path': path, 'params': params or {}, 'json': json,
                'headers': headers or {}, 'timeout': timeout}
        self.calls.append(call)

        response = self.routes.get((call['method'], path))
        if response is None:
            return FakeResponse(404, {'success': False, 'message': f'No route for {method} {path}'})
        if callable(response):
            response = response(call)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, tuple):
            return FakeResponse(*response)
        return FakeResponse(200, {'success': True, 'data': response})

    def find(self, method, path):
        return [call for call in self.calls if call['method'] == method.upper() and call['path'] == path]

    def last(self, method, path):
        matches = self.find(method, path)
        return matches[-1] if matches else None


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def app(backend):
    app = create_app(TestingConfig)
    app.extensions['api_http'] = backend
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def login_staff(client, permissions=(), roles=None, user_id='u1'):
    """Sign a staff user in by seeding the session and permission cache"""
    roles = roles if roles is not None else [
        {'name': 'super_admin', 'displayName': 'Super Admin', 'level': 0, 'isPrimary': True, 'isActive': True},
    ]
    with client.session_transaction() as sess:
        sess['token'] = STAFF_TOKEN
        sess['user'] = {'id': user_id, 'name': 'Staff User', 'phone': '9876543210'}
        sess['rbac'] = {
            'permissions': sorted(permissions),
            'roles': roles,
            'user_id': user_id,
            'loaded_at': time.time(),
        }


def login_beneficiary(client, user=None):
    with client.session_transaction() as sess:
        sess['beneficiary_token'] = PORTAL_TOKEN
        sess['beneficiary_user'] = user or {'id': 'b1', 'name': 'Asha', 'phone': '9123456780'}
        sess['user_phone'] = '9123456780'


@pytest.fixture
def connection_error():
    return requests.ConnectionError('connection refused')


def flashes(client):
    with client.session_transaction() as sess:
        return [message for _, message in sess.get('_flashes', [])]
