from flask import Blueprint, current_app
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from sqlalchemy.exc import IntegrityError
from marshmallow import Schema, fields, validate, ValidationError
from models import db, User, Project, Task
from extensions import limiter
from helpers import (
    is_valid_id,
    get_json_body, validate_request_data, success_response,
    bad_request, unauthorized, conflict, server_error
)
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


# ============================================
# Input Validation Schemas (用 marshmallow)
# ============================================

# bcrypt 只處理前 72 bytes,過長的密碼直接拒絕
BCRYPT_MAX_BYTES = 72


def validate_password_length(value):
    min_length = current_app.config.get('PASSWORD_MIN_LENGTH', 6)
    if len(value) < min_length:
        raise ValidationError(f'Password must be at least {min_length} characters')


def validate_password_bytes(value):
    if len(value.encode('utf-8')) > BCRYPT_MAX_BYTES:
        raise ValidationError(f'Password must be at most {BCRYPT_MAX_BYTES} bytes')


class RegisterSchema(Schema):
    """註冊輸入驗證"""
    email = fields.Email(required=True, error_messages={
        'required': 'Email is required',
        'invalid': 'Invalid email format'
    })
    password = fields.Str(
        required=True,
        validate=[
            validate_password_length,
            validate_password_bytes
        ],
        error_messages={'required': 'Password is required'}
    )
    first_name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=100),
        error_messages={'required': 'First name is required'}
    )
    last_name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=100),
        error_messages={'required': 'Last name is required'}
    )
    avatar_url = fields.Str(allow_none=True, validate=validate.Length(max=2048))


class LoginSchema(Schema):
    """登入輸入驗證"""
    email = fields.Email(required=True)
    password = fields.Str(required=True)


# ============================================
# Password hasher
# ============================================

def get_bcrypt():
    """從 Flask app extensions 取得 bcrypt 實例"""
    return current_app.extensions['bcrypt']


def hash_password(password):
    return get_bcrypt().generate_password_hash(password).decode('utf-8')


def check_password(password_hash, password):
    try:
        return get_bcrypt().check_password_hash(password_hash, password)
    except ValueError:
        # 超過 bcrypt 長度上限的密碼不可能是註冊時設定的密碼
        return False


# ============================================
# Token issuer
# ============================================

def issue_token(user, expires_delta=None):
    """
    發出簽章過的 access token

    identity 是 user id (字串),額外帶上 email;
    expires_delta 未指定時使用 JWT_ACCESS_TOKEN_EXPIRES
    """
    kwargs = {}
    if expires_delta is not None:
        kwargs['expires_delta'] = expires_delta
    return create_access_token(
        identity=str(user.id),
        additional_claims={'email': user.email},
        **kwargs
    )


# ============================================
# Authorization filter (供其他模組使用)
# ============================================

def get_current_user():
    """
    取得當前登入的使用者

    token 有效但使用者已被軟刪除或停用時回傳 None
    """
    identity = get_jwt_identity()
    if not identity:
        return None
    try:
        user_id = int(identity)
    except (TypeError, ValueError):
        logger.warning(f"Token carries a non-integer identity: {identity!r}")
        return None
    if not is_valid_id(user_id):
        return None
    return User.active().filter_by(id=user_id, is_active=True).first()


def email_taken(email):
    """email 的唯一性包含已軟刪除的使用者"""
    return User.query.filter_by(email=email).first() is not None


def owned_projects(user_id):
    """只包含呼叫者擁有且未刪除的專案"""
    return Project.active().filter(Project.owner_id == user_id)


def owned_tasks(user_id):
    """透過所屬專案的 owner_id 限定任務範圍"""
    return Task.active().join(Project, Task.project_id == Project.id).filter(
        Project.owner_id == user_id,
        Project.deleted_at.is_(None)
    )


# ============================================
# 註冊 API
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit("5 per hour")
def register():
    """使用者註冊"""
    data = get_json_body()
    if data is None:
        return bad_request('Request body must be JSON')

    is_valid, result = validate_request_data(RegisterSchema, data)
    if not is_valid:
        return bad_request('Validation failed', result)

    if email_taken(result['email']):
        return conflict('User with this email already exists')

    user = User(
        email=result['email'],
        password_hash=hash_password(result['password']),
        first_name=result['first_name'],
        last_name=result['last_name'],
        avatar_url=result.get('avatar_url') or None,
        is_active=True
    )

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning(f"Duplicate registration race for {result['email']}")
        return conflict('User with this email already exists')
    except Exception as e:
        db.session.rollback()
        logger.error(f"Registration error for {result['email']}: {str(e)}", exc_info=True)
        return server_error('Failed to create user')

    logger.info(f"New user registered: {user.email}")
    return success_response('User created successfully', user.to_dict(), 201)


# ============================================
# 登入 API
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    """
    使用者登入

    不區分 email 錯誤、密碼錯誤或帳號停用,一律回傳 Invalid credentials
    """
    data = get_json_body()
    if data is None:
        return bad_request('Request body must be JSON')

    is_valid, result = validate_request_data(LoginSchema, data)
    if not is_valid:
        return bad_request('Validation failed', result)

    user = User.active().filter_by(email=result['email'], is_active=True).first()

    if not user or not check_password(user.password_hash, result['password']):
        logger.warning(f"Failed login attempt for email: {result['email']}")
        return unauthorized('Invalid credentials')

    token = issue_token(user)

    logger.info(f"User logged in: {user.email}")

    return success_response('Login successful', {
        'token': token,
        'user': user.to_dict()
    })


# ============================================
# 取得當前使用者資訊
# ============================================

@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_me():
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    return success_response('User retrieved successfully', current_user.to_dict())
