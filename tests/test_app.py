import logging
from logging.handlers import RotatingFileHandler

from app import setup_logging
from config import rate_limit_storage_uri
from helpers import MAX_ID, get_pagination_params
from models import db


def test_health_check(client):
    response = client.get('/health')
    assert response.status_code == 200

    body = response.get_json()
    assert body['message'] == 'TaskFlow API is running'
    assert body['data']['status'] == 'healthy'
    assert body['data']['database'] == 'connected'


def test_security_headers(client):
    response = client.get('/health')
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'DENY'


def test_unknown_route_uses_error_envelope(client):
    response = client.get('/api/v1/nope')
    assert response.status_code == 404
    assert response.get_json()['code'] == 404


def test_wrong_method_uses_error_envelope(client):
    response = client.delete('/api/v1/auth/login')
    assert response.status_code == 405
    assert response.get_json()['code'] == 405


def test_pagination_defaults(app):
    with app.test_request_context('/'):
        assert get_pagination_params() == (1, 10)


def test_pagination_bounds(app):
    with app.test_request_context('/?page=-3&limit=0'):
        assert get_pagination_params() == (1, 1)

    with app.test_request_context('/?page=4&limit=500'):
        assert get_pagination_params() == (4, 100)


def test_pagination_non_integer_falls_back(app):
    with app.test_request_context('/?page=abc&limit=ten'):
        assert get_pagination_params() == (1, 10)


def test_pagination_page_beyond_database_range_is_clamped(app):
    with app.test_request_context('/?page=99999999999999999999&limit=10'):
        assert get_pagination_params() == (MAX_ID // 10 + 1, 10)


def test_health_check_database_down(client, monkeypatch):
    def broken_execute(*args, **kwargs):
        raise RuntimeError('connection refused')

    monkeypatch.setattr(db.session, 'execute', broken_execute)

    response = client.get('/health')
    assert response.status_code == 503
    assert response.get_json() == {
        'error': 'Service Unavailable',
        'message': 'Database connection failed',
        'code': 503
    }


def test_rate_limit_storage_defaults_to_memory(monkeypatch):
    monkeypatch.delenv('RATELIMIT_STORAGE_URI', raising=False)
    monkeypatch.delenv('REDIS_URL', raising=False)
    assert rate_limit_storage_uri() == 'memory://'


def test_rate_limit_storage_uses_redis_only_when_configured(monkeypatch):
    monkeypatch.delenv('RATELIMIT_STORAGE_URI', raising=False)
    monkeypatch.setenv('REDIS_URL', 'redis://cache:6379/1')
    assert rate_limit_storage_uri() == 'redis://cache:6379/1'

    monkeypatch.setenv('RATELIMIT_STORAGE_URI', 'memcached://cache:11211')
    assert rate_limit_storage_uri() == 'memcached://cache:11211'


def test_setup_logging_does_not_duplicate_handlers(app, tmp_path):
    app.config['LOG_DIR'] = str(tmp_path)
    root_logger = logging.getLogger()
    previous_level = root_logger.level

    def file_handlers():
        return [
            h for h in root_logger.handlers
            if isinstance(h, RotatingFileHandler) and h.baseFilename.startswith(str(tmp_path))
        ]

    try:
        setup_logging(app)
        setup_logging(app)
        assert len(file_handlers()) == 2
    finally:
        for handler in file_handlers():
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(previous_level)
