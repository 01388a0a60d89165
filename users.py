from flask import Blueprint
from flask_jwt_extended import jwt_required
from marshmallow import Schema, fields, validate
from models import db, User
from auth import get_current_user
from helpers import (
    is_valid_id,
    get_json_body, validate_request_data, success_response, list_response, paginate,
    bad_request, unauthorized, forbidden, not_found, server_error
)
import logging

users_bp = Blueprint('users', __name__)
logger = logging.getLogger(__name__)


class UpdateUserSchema(Schema):
    """個人資料更新驗證"""
    first_name = fields.Str(validate=validate.Length(min=1, max=100))
    last_name = fields.Str(validate=validate.Length(min=1, max=100))
    avatar_url = fields.Str(allow_none=True, validate=validate.Length(max=2048))
    is_active = fields.Bool()


# ============================================
# 查詢使用者列表
# ============================================

@users_bp.route('', methods=['GET'])
@jwt_required()
def get_users():
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    try:
        users = paginate(User.active().order_by(User.created_at.asc(), User.id.asc()))
    except Exception as e:
        logger.error(f"Error fetching users: {str(e)}", exc_info=True)
        return server_error('Failed to fetch users')

    return list_response(users, User.to_dict)


# ============================================
# 查詢單一使用者
# ============================================

@users_bp.route('/<int:user_id>', methods=['GET'])
@jwt_required()
def get_user(user_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    user = User.active().filter_by(id=user_id).first() if is_valid_id(user_id) else None
    if not user:
        return not_found('User not found')

    return success_response('User retrieved successfully', user.to_dict())


# ============================================
# 更新使用者 (只能改自己)
# ============================================

@users_bp.route('/<int:user_id>', methods=['PUT'])
@jwt_required()
def update_user(user_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    if current_user.id != user_id:
        return forbidden('You can only update your own profile')

    data = get_json_body()
    if data is None:
        return bad_request('Request body must be JSON')

    is_valid, result = validate_request_data(UpdateUserSchema, data)
    if not is_valid:
        return bad_request('Validation failed', result)

    # 空字串的 avatar_url 和註冊時一樣存成 None
    if 'avatar_url' in result:
        result['avatar_url'] = result['avatar_url'] or None

    for field in ['first_name', 'last_name', 'avatar_url', 'is_active']:
        if field in result:
            setattr(current_user, field, result[field])

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"User update error for {current_user.email}: {str(e)}", exc_info=True)
        return server_error('Failed to update user')

    logger.info(f"User profile updated: {current_user.email}")
    return success_response('User updated successfully', current_user.to_dict())


# ============================================
# 刪除使用者 (軟刪除,只能刪自己)
# ============================================

@users_bp.route('/<int:user_id>', methods=['DELETE'])
@jwt_required()
def delete_user(user_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    if current_user.id != user_id:
        return forbidden('You can only delete your own profile')

    current_user.soft_delete()

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"User deletion error for {current_user.email}: {str(e)}", exc_info=True)
        return server_error('Failed to delete user')

    logger.info(f"User soft-deleted: {current_user.email}")
    return success_response('User deleted successfully')
