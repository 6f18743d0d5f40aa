from flask import Blueprint, current_app, request
from sqlalchemy import or_
from social_platform import db
from social_platform.login_guard import LoginGuard, SqlAlchemyLoginAttemptStore
from social_platform.models import User
from social_platform.utils import (validate_email, check_password_strength, hash_password,
                                   verify_password, generate_account_id, create_token,
                                   token_required, serialize_user, success, error)

auth_bp = Blueprint('auth', __name__)


def get_login_guard():
    return LoginGuard(
        SqlAlchemyLoginAttemptStore(db.session),
        base_freeze_minutes=current_app.config['LOGIN_FREEZE_BASE_MINUTES'],
    )


@auth_bp.route('/register', methods=['POST'])
def register():
    """注册新用户"""
    try:
        data = request.get_json(silent=True) or {}
        email = (data.get('email') or '').strip().lower()
        password = data.get('password') or ''

        if not email or not password:
            return error('邮箱和密码不能为空', 400, 'MISSING_PARAMETERS')

        # 验证邮箱格式
        if not validate_email(email):
            return error('邮箱格式不正确', 400, 'INVALID_EMAIL')

        # 验证密码强度
        reason = check_password_strength(password)
        if reason:
            return error(reason, 400, 'INVALID_PASSWORD')

        # 检查邮箱是否已存在
        if User.query.filter_by(email=email).first():
            return error('该邮箱已被注册', 400, 'EMAIL_EXISTS')

        user = User(
            account_id=generate_account_id(),
            email=email,
            password_hash=hash_password(password),
            is_profile_set=False,
        )
        db.session.add(user)
        db.session.commit()

        current_app.logger.info(f'新用户注册成功: {email}')
        return success({
            'token': create_token(user.id),
            'user': serialize_user(user, private=True),
        }, '注册成功', 201)

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'注册过程发生错误: {str(e)}')
        return error('注册失败，请稍后重试', 500, 'REGISTRATION_FAILED')


@auth_bp.route('/login', methods=['POST'])
def login():
    """登录：支持邮箱或6位账号，连续失败会冻结账号"""
    try:
        data = request.get_json(silent=True) or {}
        account = (data.get('account') or '').strip()
        password = data.get('password') or ''

        if not account or not password:
            return error('账号和密码不能为空', 400, 'MISSING_PARAMETERS')

        guard = get_login_guard()

        # 检查账号是否被冻结
        status = guard.check(account)
        if not status.allowed:
            return error(f'账号已被冻结，请在 {status.freeze_minutes} 分钟后重试', 423, 'ACCOUNT_FROZEN')

        user = User.query.filter(
            or_(User.email == account.lower(), User.account_id == account)
        ).first()

        if not user:
            result = guard.record_failure(account, current_app.config['LOGIN_NOT_FOUND_THRESHOLD'])
            if result.just_frozen:
                current_app.logger.warning(f'账号不存在且连续失败，已冻结: {account}')
                return error(f'连续失败次数过多，账号已被冻结 {result.freeze_minutes} 分钟', 423, 'ACCOUNT_FROZEN')
            if not result.allowed:
                return error(f'账号已被冻结，请在 {result.freeze_minutes} 分钟后重试', 423, 'ACCOUNT_FROZEN')
            return error(f'用户不存在（剩余尝试次数：{result.attempts_remaining}）', 401, 'USER_NOT_FOUND')

        if not verify_password(password, user.password_hash):
            result = guard.record_failure(account, current_app.config['LOGIN_WRONG_PASSWORD_THRESHOLD'])
            if result.just_frozen:
                current_app.logger.warning(f'密码错误次数过多，已冻结: {account}')
                return error(f'密码错误次数过多，账号已被冻结 {result.freeze_minutes} 分钟', 423, 'ACCOUNT_FROZEN')
            if not result.allowed:
                return error(f'账号已被冻结，请在 {result.freeze_minutes} 分钟后重试', 423, 'ACCOUNT_FROZEN')
            return error(f'密码错误（剩余尝试次数：{result.attempts_remaining}）', 401, 'INVALID_CREDENTIALS')

        # 登录成功，清除失败记录
        result = guard.record_success(account)
        if not result.allowed:
            return error(f'账号已被冻结，请在 {result.freeze_minutes} 分钟后重试', 423, 'ACCOUNT_FROZEN')

        current_app.logger.info(f'用户登录成功: {user.id}')
        return success({
            'token': create_token(user.id),
            'user': serialize_user(user, private=True),
        }, '登录成功')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'登录错误: {str(e)}')
        return error('服务器错误，请稍后重试', 500, 'SERVER_ERROR')


@auth_bp.route('/user', methods=['GET'])
@token_required
def get_user_info(user_id):
    """获取当前用户信息"""
    try:
        user = db.session.get(User, user_id)
        if not user:
            return error('用户不存在', 404, 'USER_NOT_FOUND')
        return success(serialize_user(user, private=True))
    except Exception as e:
        current_app.logger.error(f'获取用户信息错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@auth_bp.route('/logout', methods=['POST'])
@token_required
def logout(user_id):
    # Token无状态，前端删除即可
    return success(None, '登出成功')
