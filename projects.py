from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from sqlalchemy.orm import joinedload, selectinload
from marshmallow import Schema, fields, validate
from models import db, Project, PROJECT_STATUSES, DEFAULT_PROJECT_COLOR
from auth import get_current_user, owned_projects
from helpers import (
    is_valid_id,
    get_json_body, validate_request_data, success_response, list_response, paginate,
    bad_request, unauthorized, not_found, server_error
)
import logging

projects_bp = Blueprint('projects', __name__)
logger = logging.getLogger(__name__)

HEX_COLOR = validate.Regexp(r'^#[0-9A-Fa-f]{6}$', error='Color must be a hex value like #6366f1')


# ============================================
# Input Validation Schemas
# ============================================

class CreateProjectSchema(Schema):
    """建立專案驗證"""
    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Project name is required'}
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    color = fields.Str(validate=HEX_COLOR)


class UpdateProjectSchema(Schema):
    """更新專案驗證"""
    name = fields.Str(validate=validate.Length(min=1, max=255))
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    color = fields.Str(validate=HEX_COLOR)
    status = fields.Str(validate=validate.OneOf(PROJECT_STATUSES))


def find_owned_project(project_id, user_id):
    """
    取得呼叫者擁有的專案

    不存在和不屬於呼叫者的專案一樣回傳 None
    """
    if not is_valid_id(project_id):
        return None
    return owned_projects(user_id).options(
        joinedload(Project.owner),
        selectinload(Project.tasks)
    ).filter(Project.id == project_id).first()


# ============================================
# 建立專案
# ============================================

@projects_bp.route('', methods=['POST'])
@jwt_required()
def create_project():
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    data = get_json_body()
    if data is None:
        return bad_request('Request body must be JSON')

    is_valid, result = validate_request_data(CreateProjectSchema, data)
    if not is_valid:
        return bad_request('Validation failed', result)

    project = Project(
        name=result['name'],
        description=result.get('description'),
        color=result.get('color', DEFAULT_PROJECT_COLOR),
        owner_id=current_user.id,
        status='active'
    )

    try:
        db.session.add(project)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Project creation error: {str(e)}", exc_info=True)
        return server_error('Failed to create project')

    logger.info(f"Project created: {project.name} by user {current_user.email}")
    return success_response('Project created successfully', project.to_dict(include_owner=True), 201)


# ============================================
# 查詢我的所有專案
# ============================================

@projects_bp.route('', methods=['GET'])
@jwt_required()
def get_projects():
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    query = owned_projects(current_user.id).options(
        joinedload(Project.owner),
        selectinload(Project.tasks)
    )

    # 篩選: 按狀態
    status = request.args.get('status')
    if status:
        if status not in PROJECT_STATUSES:
            return bad_request(f"Invalid status filter: {status}")
        query = query.filter(Project.status == status)

    query = query.order_by(Project.created_at.desc(), Project.id.desc())

    try:
        projects = paginate(query)
    except Exception as e:
        logger.error(f"Error fetching projects: {str(e)}", exc_info=True)
        return server_error('Failed to fetch projects')

    return list_response(projects, lambda p: p.to_dict(include_owner=True))


# ============================================
# 查詢單一專案 (含任務)
# ============================================

@projects_bp.route('/<int:project_id>', methods=['GET'])
@jwt_required()
def get_project(project_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    project = find_owned_project(project_id, current_user.id)
    if not project:
        return not_found('Project not found')

    return success_response(
        'Project retrieved successfully',
        project.to_dict(include_owner=True, include_tasks=True)
    )


# ============================================
# 更新專案
# ============================================

@projects_bp.route('/<int:project_id>', methods=['PUT'])
@jwt_required()
def update_project(project_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    data = get_json_body()
    if data is None:
        return bad_request('Request body must be JSON')

    is_valid, result = validate_request_data(UpdateProjectSchema, data)
    if not is_valid:
        return bad_request('Validation failed', result)

    project = find_owned_project(project_id, current_user.id)
    if not project:
        return not_found('Project not found')

    for field in ['name', 'description', 'color', 'status']:
        if field in result:
            setattr(project, field, result[field])

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Project update error: {str(e)}", exc_info=True)
        return server_error('Failed to update project')

    logger.info(f"Project {project_id} updated by user {current_user.email}")
    return success_response('Project updated successfully', project.to_dict(include_owner=True))


# ============================================
# 刪除專案 (軟刪除,連帶任務)
# ============================================

@projects_bp.route('/<int:project_id>', methods=['DELETE'])
@jwt_required()
def delete_project(project_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    project = find_owned_project(project_id, current_user.id)
    if not project:
        return not_found('Project not found')

    project.soft_delete()

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Project deletion error: {str(e)}", exc_info=True)
        return server_error('Failed to delete project')

    logger.info(f"Project deleted: {project.name} by user {current_user.email}")
    return success_response('Project deleted successfully')
