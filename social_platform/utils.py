import bcrypt
import re
import secrets
from datetime import datetime
from functools import wraps

from flask import current_app, jsonify, request
from jose import JWTError, jwt

from social_platform.models import User

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
GENDERS = ('male', 'female', 'other')


def success(data=None, message='操作成功', status=200):
    return jsonify({'status': 'success', 'message': message, 'data': data}), status


def error(message, status=500, code='SERVER_ERROR'):
    return jsonify({'status': 'error', 'message': message, 'code': code}), status


def iso(value):
    return value.isoformat() if value else None


def hash_password(password):
    salt = bcrypt.gensalt(rounds=current_app.config['BCRYPT_ROUNDS'])
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password, password_hash):
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def validate_email(email):
    """验证邮箱格式"""
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def check_password_strength(password):
    """返回不符合要求的原因，符合时返回None"""
    if len(password) < current_app.config['PASSWORD_MIN_LENGTH']:
        return f"密码长度至少{current_app.config['PASSWORD_MIN_LENGTH']}位"
    if not re.search(r'[A-Z]', password):
        return '密码必须包含大写字母'
    if not re.search(r'[a-z]', password):
        return '密码必须包含小写字母'
    if not re.search(r'[0-9]', password):
        return '密码必须包含数字'
    return None


def generate_account_id():
    """生成唯一的6位数字账号"""
    while True:
        account_id = str(100000 + secrets.randbelow(900000))
        if not User.query.filter_by(account_id=account_id).first():
            return account_id


def create_token(user_id):
    payload = {
        'userId': user_id,
        'exp': datetime.utcnow() + current_app.config['JWT_EXPIRES'],
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'],
                      algorithm=current_app.config['JWT_ALGORITHM'])


def decode_token(token):
    """解析Token，返回用户ID；无效或过期时抛出 JWTError"""
    payload = jwt.decode(token, current_app.config['JWT_SECRET'],
                         algorithms=[current_app.config['JWT_ALGORITHM']])
    user_id = payload.get('userId')
    if not isinstance(user_id, int):
        raise JWTError('missing userId')
    return user_id


def token_required(f):
    """校验 Bearer Token，并将用户ID作为第一个参数传入"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = request.headers.get('Authorization', '')
        token = header[7:].strip() if header.startswith('Bearer ') else ''
        if not token:
            return error('未授权，请先登录', 401, 'UNAUTHORIZED')
        try:
            user_id = decode_token(token)
        except JWTError:
            return error('Token 无效或已过期', 401, 'INVALID_TOKEN')
        return f(user_id, *args, **kwargs)
    return decorated_function


def admin_required(f):
    """配置了 ADMIN_TOKEN 时要求请求头 X-Admin-Token 匹配"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get('ADMIN_TOKEN')
        if expected and not secrets.compare_digest(request.headers.get('X-Admin-Token', ''), expected):
            return error('无权访问管理接口', 403, 'FORBIDDEN')
        return f(*args, **kwargs)
    return decorated_function


def serialize_user(user, private=False):
    data = {
        'id': user.id,
        'accountId': user.account_id,
        'nickname': user.nickname,
        'avatarUrl': user.avatar_url,
        'gender': user.gender,
        'age': user.age,
    }
    if private:
        data.update({
            'email': user.email,
            'isProfileSet': user.is_profile_set,
            'isMember': user.is_member,
            'memberExpireDate': iso(user.member_expire_date),
            'createdAt': iso(user.created_at),
        })
    return data


def brief_user(user):
    if user is None:
        return None
    return {
        'id': user.id,
        'accountId': user.account_id,
        'nickname': user.nickname,
        'avatarUrl': user.avatar_url,
    }
