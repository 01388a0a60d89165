from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from sqlalchemy.orm import joinedload
from marshmallow import Schema, fields, validate
from models import db, Task, User, TASK_STATUSES, TASK_PRIORITIES
from auth import get_current_user, owned_tasks
from projects import find_owned_project
from helpers import (
    is_valid_id, MAX_ID,
    get_json_body, validate_request_data, success_response, list_response, paginate,
    bad_request, unauthorized, not_found, server_error
)
import logging

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)


# ============================================
# Input Validation Schemas
# ============================================

class CreateTaskSchema(Schema):
    """建立任務驗證"""
    title = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Task title is required'}
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES), load_default='todo')
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES), load_default='medium')
    assignee_id = fields.Int(allow_none=True, validate=validate.Range(min=1, max=MAX_ID))
    due_date = fields.DateTime(allow_none=True)


class UpdateTaskSchema(Schema):
    """更新任務驗證"""
    title = fields.Str(validate=validate.Length(min=1, max=255))
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES))
    assignee_id = fields.Int(allow_none=True, validate=validate.Range(min=1, max=MAX_ID))
    due_date = fields.DateTime(allow_none=True)


class UpdateTaskStatusSchema(Schema):
    """任務狀態更新驗證"""
    status = fields.Str(
        required=True,
        validate=validate.OneOf(TASK_STATUSES),
        error_messages={'required': 'Status is required'}
    )


# ============================================
# 輔助函數
# ============================================

def find_owned_task(task_id, user_id):
    """透過專案 owner 限定範圍取得任務,不屬於呼叫者時回傳 None"""
    if not is_valid_id(task_id):
        return None
    return owned_tasks(user_id).options(
        joinedload(Task.project),
        joinedload(Task.assignee)
    ).filter(Task.id == task_id).first()


def assignee_exists(assignee_id):
    return User.active().filter_by(id=assignee_id).first() is not None


def save_task(task, current_user, action):
    """commit 並回傳 (ok, error_response)"""
    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Task {action} error: {str(e)}", exc_info=True)
        return False, server_error(f'Failed to {action} task')

    logger.info(f"Task {task.id} {action}d by user {current_user.email}")
    return True, None


# ============================================
# 建立任務
# ============================================

@tasks_bp.route('/projects/<int:project_id>/tasks', methods=['POST'])
@jwt_required()
def create_task(project_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    data = get_json_body()
    if data is None:
        return bad_request('Request body must be JSON')

    is_valid, result = validate_request_data(CreateTaskSchema, data)
    if not is_valid:
        return bad_request('Validation failed', result)

    project = find_owned_project(project_id, current_user.id)
    if not project:
        return not_found('Project not found')

    if result.get('assignee_id') is not None and not assignee_exists(result['assignee_id']):
        return bad_request('Assignee does not exist')

    task = Task(
        title=result['title'],
        description=result.get('description'),
        project_id=project.id,
        assignee_id=result.get('assignee_id'),
        priority=result['priority'],
        due_date=result.get('due_date')
    )
    task.set_status(result['status'])

    try:
        db.session.add(task)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Task creation error: {str(e)}", exc_info=True)
        return server_error('Failed to create task')

    logger.info(f"Task created: {task.title} in project {project_id} by user {current_user.email}")
    return success_response('Task created successfully', task.to_dict(include_project=True), 201)


# ============================================
# 查詢專案的所有任務
# ============================================

@tasks_bp.route('/projects/<int:project_id>/tasks', methods=['GET'])
@jwt_required()
def get_project_tasks(project_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    project = find_owned_project(project_id, current_user.id)
    if not project:
        return not_found('Project not found')

    query = Task.active().filter(Task.project_id == project.id).options(
        joinedload(Task.assignee),
        joinedload(Task.project)
    )

    # 篩選: 狀態 / 優先級 / 負責人
    status = request.args.get('status')
    if status:
        if status not in TASK_STATUSES:
            return bad_request(f"Invalid status filter: {status}")
        query = query.filter(Task.status == status)

    priority = request.args.get('priority')
    if priority:
        if priority not in TASK_PRIORITIES:
            return bad_request(f"Invalid priority filter: {priority}")
        query = query.filter(Task.priority == priority)

    assignee_id = request.args.get('assignee_id', type=int)
    if assignee_id is not None:
        if not is_valid_id(assignee_id):
            return bad_request(f"Invalid assignee filter: {assignee_id}")
        query = query.filter(Task.assignee_id == assignee_id)

    query = query.order_by(Task.created_at.desc(), Task.id.desc())

    try:
        tasks = paginate(query)
    except Exception as e:
        logger.error(f"Error fetching tasks: {str(e)}", exc_info=True)
        return server_error('Failed to fetch tasks')

    return list_response(tasks, lambda t: t.to_dict(include_project=True))


# ============================================
# 查詢單一任務
# ============================================

@tasks_bp.route('/tasks/<int:task_id>', methods=['GET'])
@jwt_required()
def get_task(task_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    task = find_owned_task(task_id, current_user.id)
    if not task:
        return not_found('Task not found')

    return success_response('Task retrieved successfully', task.to_dict(include_project=True))


# ============================================
# 更新任務
# ============================================

@tasks_bp.route('/tasks/<int:task_id>', methods=['PUT'])
@jwt_required()
def update_task(task_id):
    """
    更新任務資訊

    只更新 body 中有的欄位,狀態變更時自動維護 completed_at
    """
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    data = get_json_body()
    if data is None:
        return bad_request('Request body must be JSON')

    is_valid, result = validate_request_data(UpdateTaskSchema, data)
    if not is_valid:
        return bad_request('Validation failed', result)

    task = find_owned_task(task_id, current_user.id)
    if not task:
        return not_found('Task not found')

    if result.get('assignee_id') is not None and not assignee_exists(result['assignee_id']):
        return bad_request('Assignee does not exist')

    for field in ['title', 'description', 'priority', 'assignee_id', 'due_date']:
        if field in result:
            setattr(task, field, result[field])

    if 'status' in result:
        task.set_status(result['status'])

    ok, error = save_task(task, current_user, 'update')
    if not ok:
        return error

    return success_response('Task updated successfully', task.to_dict(include_project=True))


# ============================================
# 只更新任務狀態
# ============================================

@tasks_bp.route('/tasks/<int:task_id>/status', methods=['PATCH'])
@jwt_required()
def update_task_status(task_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    data = get_json_body()
    if data is None:
        return bad_request('Request body must be JSON')

    is_valid, result = validate_request_data(UpdateTaskStatusSchema, data)
    if not is_valid:
        return bad_request('Validation failed', result)

    task = find_owned_task(task_id, current_user.id)
    if not task:
        return not_found('Task not found')

    task.set_status(result['status'])

    ok, error = save_task(task, current_user, 'update')
    if not ok:
        return error

    return success_response('Task status updated successfully', task.to_dict(include_project=True))


# ============================================
# 刪除任務 (軟刪除)
# ============================================

@tasks_bp.route('/tasks/<int:task_id>', methods=['DELETE'])
@jwt_required()
def delete_task(task_id):
    current_user = get_current_user()
    if not current_user:
        return unauthorized()

    task = find_owned_task(task_id, current_user.id)
    if not task:
        return not_found('Task not found')

    task.soft_delete()

    ok, error = save_task(task, current_user, 'delete')
    if not ok:
        return error

    return success_response('Task deleted successfully')
