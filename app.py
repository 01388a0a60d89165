from flask import Flask, request
from werkzeug.exceptions import HTTPException
from sqlalchemy import text
from config import Config, get_config
from models import db
from extensions import jwt, bcrypt, cors, limiter
from helpers import success_response, error_response
import logging
from logging.handlers import RotatingFileHandler
import os

API_PREFIX = '/api/v1'


# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    設定 logging 系統

    info 和 error 分開寫入,用 RotatingFileHandler 避免 log 檔案過大
    """
    log_dir = app.config.get('LOG_DIR', 'logs')
    os.makedirs(log_dir, exist_ok=True)
    root_logger = logging.getLogger()
    root_logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # 同一個 process 多次呼叫 create_app 時,已掛上的檔案不再重複加 handler
    attached = {
        handler.baseFilename for handler in root_logger.handlers
        if isinstance(handler, RotatingFileHandler)
    }
    info_path = os.path.abspath(os.path.join(log_dir, 'app.log'))
    error_path = os.path.abspath(os.path.join(log_dir, 'error.log'))
    if info_path in attached and error_path in attached:
        return

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    info_handler = RotatingFileHandler(
        info_path,
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    error_handler = RotatingFileHandler(
        error_path,
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    # blueprint 模組用 logging.getLogger(__name__),所以掛在 root logger
    root_logger.addHandler(info_handler)
    root_logger.addHandler(error_handler)

    app.logger.info('Application startup')


# ============================================
# JWT 錯誤處理
# ============================================

def describe_auth_failure(default):
    """依照 Authorization header 的狀態給出 401 訊息"""
    header = request.headers.get('Authorization', '').strip()
    if not header:
        return 'Missing authorization header'
    if not header.startswith('Bearer '):
        return 'Invalid authorization header format'
    return default


def register_jwt_handlers(app):

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        app.logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return error_response('Unauthorized', 'Token expired', 401)

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        app.logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return error_response('Unauthorized', describe_auth_failure('Invalid token'), 401)

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        app.logger.warning(f"Unauthorized access attempt from: {request.remote_addr}, error: {error}")
        return error_response('Unauthorized', describe_auth_failure('Invalid token'), 401)


# ============================================
# 全域錯誤處理
# ============================================

def register_error_handlers(app):

    @app.errorhandler(404)
    def not_found(error):
        return error_response('Not Found', 'The requested resource does not exist', 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('Method Not Allowed', 'The HTTP method is not allowed for this endpoint', 405)

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return error_response('Too Many Requests', 'Too many requests. Please try again later.', 429)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return error_response(error.name, error.description, error.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """最後的防線:記錄完整 stack trace,只給前端通用訊息"""
        db.session.rollback()
        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)
        return error_response('Internal Server Error', 'An unexpected error occurred. Please try again later.', 500)


# ============================================
# Request/Response Logging
# ============================================

def register_request_hooks(app):

    @app.before_request
    def log_request():
        app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        # security headers
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        return response


# ============================================
# 建立 Flask App
# ============================================

def create_app(config_class=None):
    app = Flask(__name__)
    app.config.from_object(config_class or get_config())

    if app.config.get('ENV') == 'production' and not app.testing:
        Config.validate()

    if not app.debug and not app.testing:
        setup_logging(app)

    # 擴展初始化
    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)
    cors.init_app(
        app,
        supports_credentials=True,
        origins=app.config['CORS_ORIGINS'],
        methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization']
    )
    app.extensions['bcrypt'] = bcrypt

    register_jwt_handlers(app)
    register_error_handlers(app)
    register_request_hooks(app)

    # 註冊 Blueprints
    from auth import auth_bp
    from users import users_bp
    from projects import projects_bp
    from tasks import tasks_bp

    app.register_blueprint(auth_bp, url_prefix=f'{API_PREFIX}/auth')
    app.register_blueprint(users_bp, url_prefix=f'{API_PREFIX}/users')
    app.register_blueprint(projects_bp, url_prefix=f'{API_PREFIX}/projects')
    app.register_blueprint(tasks_bp, url_prefix=API_PREFIX)

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """健康檢查端點,檢查資料庫連線"""
        try:
            db.session.execute(text('SELECT 1'))
        except Exception as e:
            app.logger.error(f"Health check failed: {str(e)}")
            return error_response('Service Unavailable', 'Database connection failed', 503)

        return success_response('TaskFlow API is running', {
            'status': 'healthy',
            'version': app.config['API_VERSION'],
            'database': 'connected'
        })

    with app.app_context():
        db.create_all()
        app.logger.info('Database tables created')

    return app


# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # production 環境應該用 gunicorn: gunicorn "app:create_app()"
    app = create_app()
    port = int(os.getenv('FLASK_PORT', 8080))

    app.run(
        debug=app.debug,
        port=port,
        host='0.0.0.0'
    )
