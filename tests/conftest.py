import pytest

from social_platform import create_app, db, init_db
from social_platform.config import TestConfig

PASSWORD = 'Passw0rd1'


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        init_db()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, email, password=PASSWORD):
    resp = client.post('/api/auth/register', json={'email': email, 'password': password})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['data']


def auth_headers(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def make_user(client):
    """Register a user and return (user dict, auth headers)."""
    def _make(email, nickname=None, profile_set=True):
        data = register(client, email)
        headers = auth_headers(data['token'])
        if nickname or profile_set:
            resp = client.put('/api/user/profile', json={
                'nickname': nickname or email.split('@')[0],
                'isProfileSet': profile_set,
            }, headers=headers)
            assert resp.status_code == 200
            data['user'] = resp.get_json()['data']
        return data['user'], headers
    return _make
