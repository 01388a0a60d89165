from flask import jsonify, request, current_app
from marshmallow import ValidationError


# ============================================
# 統一的回應格式
# ============================================

def success_response(message, data=None, status=200):
    """成功回應: {message, data}"""
    body = {'message': message}
    if data is not None:
        body['data'] = data
    return jsonify(body), status


def error_response(error, message, code, details=None):
    """錯誤回應: {error, message, code}"""
    body = {
        'error': error,
        'message': message,
        'code': code
    }
    if details:
        body['details'] = details
    return jsonify(body), code


def bad_request(message='Invalid request body', details=None):
    return error_response('Bad Request', message, 400, details)


def unauthorized(message='User not authenticated'):
    return error_response('Unauthorized', message, 401)


def forbidden(message):
    return error_response('Forbidden', message, 403)


def not_found(message):
    return error_response('Not Found', message, 404)


def conflict(message):
    return error_response('Conflict', message, 409)


def server_error(message):
    # 不要把 exception 細節洩漏給前端
    return error_response('Internal Server Error', message, 500)


# ============================================
# 輸入驗證
# ============================================

def get_json_body():
    """取得 JSON body,不是 JSON object 時回傳 None"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def validate_request_data(schema_class, data):
    """
    統一的輸入驗證函數

    Returns:
        tuple: (is_valid, data_or_errors)
    """
    schema = schema_class()
    try:
        validated_data = schema.load(data)
        return True, validated_data
    except ValidationError as err:
        return False, err.messages


# ============================================
# 整數範圍
# ============================================

# db.Integer 在 PostgreSQL 是 32-bit
MAX_ID = 2**31 - 1


def is_valid_id(value):
    """超出資料庫整數範圍的 id 不可能存在"""
    return value is not None and 1 <= value <= MAX_ID


# ============================================
# 分頁
# ============================================

def _int_arg(name, default):
    value = request.args.get(name, default, type=int)
    return default if value is None else value


def get_pagination_params():
    """
    讀取 page / limit 參數

    page 最小為 1,limit 限制在 [1, MAX_PAGE_SIZE],無法解析時使用預設值
    """
    default_limit = current_app.config.get('DEFAULT_PAGE_SIZE', 10)
    max_limit = current_app.config.get('MAX_PAGE_SIZE', 100)

    limit = min(max(_int_arg('limit', default_limit), 1), max_limit)
    # offset 不能超過資料庫整數範圍,超出的頁數一律視為最後一個可查詢的空頁
    page = min(max(_int_arg('page', 1), 1), MAX_ID // limit + 1)
    return page, limit


def paginate(query):
    """依照 request 的分頁參數執行查詢"""
    page, limit = get_pagination_params()
    return query.paginate(page=page, per_page=limit, error_out=False, count=True)


def list_response(pagination, serializer):
    """列表回應: {data, pagination:{page, limit, total, total_pages}}"""
    return jsonify({
        'data': [serializer(item) for item in pagination.items],
        'pagination': {
            'page': pagination.page,
            'limit': pagination.per_page,
            'total': pagination.total,
            'total_pages': pagination.pages
        }
    }), 200
