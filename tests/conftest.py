import pytest
from app import create_app
from config import TestingConfig
from models import db

DEFAULT_PASSWORD = 'secret123'


@pytest.fixture(scope="function")
def app():
    """每個測試都用全新的記憶體資料庫"""
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def client(app):
    return app.test_client()


@pytest.fixture
def register_user(client):
    def _register(email='alice@example.com', password=DEFAULT_PASSWORD,
                  first_name='Alice', last_name='Liddell', **extra):
        payload = {
            'email': email,
            'password': password,
            'first_name': first_name,
            'last_name': last_name,
            **extra
        }
        return client.post('/api/v1/auth/register', json=payload)
    return _register


@pytest.fixture
def login(client):
    def _login(email='alice@example.com', password=DEFAULT_PASSWORD):
        return client.post('/api/v1/auth/login', json={'email': email, 'password': password})
    return _login


@pytest.fixture
def auth_headers(register_user, login):
    """註冊並登入,回傳 Authorization header"""
    def _headers(email='alice@example.com', password=DEFAULT_PASSWORD):
        register_user(email=email, password=password)
        token = login(email, password).get_json()['data']['token']
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def alice(auth_headers):
    return auth_headers('alice@example.com')


@pytest.fixture
def bob(auth_headers):
    return auth_headers('bob@example.com')


@pytest.fixture
def create_project(client):
    def _create(headers, name='Website', **extra):
        response = client.post('/api/v1/projects', json={'name': name, **extra}, headers=headers)
        assert response.status_code == 201
        return response.get_json()['data']
    return _create


@pytest.fixture
def create_task(client):
    def _create(headers, project_id, title='Write tests', **extra):
        response = client.post(
            f'/api/v1/projects/{project_id}/tasks',
            json={'title': title, **extra},
            headers=headers
        )
        assert response.status_code == 201
        return response.get_json()['data']
    return _create
