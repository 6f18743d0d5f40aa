from datetime import datetime
import math
import time

from flask import Blueprint, current_app, request
from social_platform import db
from social_platform.membership import CardKeyError, activate_card_key
from social_platform.models import Friend, Message, Tag, User, UserTag
from social_platform.utils import (GENDERS, hash_password, verify_password, token_required,
                                   serialize_user, success, error)

user_bp = Blueprint('user', __name__)


@user_bp.route('/profile', methods=['PUT'])
@token_required
def update_profile(user_id):
    """更新个人信息"""
    try:
        data = request.get_json(silent=True) or {}
        user = db.session.get(User, user_id)
        if not user:
            return error('用户不存在', 404, 'USER_NOT_FOUND')

        gender = data.get('gender')
        if gender and gender not in GENDERS:
            return error('性别取值不正确', 400, 'INVALID_GENDER')

        age = data.get('age')
        if age is not None and (not isinstance(age, int) or isinstance(age, bool) or not 0 < age < 150):
            return error('年龄取值不正确', 400, 'INVALID_AGE')

        if data.get('nickname'):
            user.nickname = data['nickname'].strip()[:50]
        if gender:
            user.gender = gender
        if age:
            user.age = age
        if data.get('avatarUrl'):
            user.avatar_url = data['avatarUrl']
        if data.get('isProfileSet') is not None:
            user.is_profile_set = bool(data['isProfileSet'])

        db.session.commit()
        return success(serialize_user(user, private=True), '个人信息更新成功')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'更新个人信息错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@user_bp.route('/avatar', methods=['POST'])
@token_required
def upload_avatar(user_id):
    # 暂不保存文件，返回生成的头像地址
    avatar_url = f'https://api.dicebear.com/7.x/avataaars/svg?seed={user_id}-{int(time.time() * 1000)}'
    return success({'url': avatar_url}, '头像上传成功')


@user_bp.route('/tags', methods=['GET'])
@token_required
def get_tags(user_id):
    """获取所有标签"""
    try:
        tags = Tag.query.order_by(Tag.category.asc(), Tag.display_order.asc()).all()
        selected = {ut.tag_id for ut in UserTag.query.filter_by(user_id=user_id).all()}
        return success([{
            'id': tag.id,
            'name': tag.name,
            'category': tag.category,
            'displayOrder': tag.display_order,
            'selected': tag.id in selected,
        } for tag in tags])
    except Exception as e:
        current_app.logger.error(f'获取标签错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@user_bp.route('/tags', methods=['POST'])
@token_required
def update_user_tags(user_id):
    """更新用户标签（整体替换）"""
    try:
        data = request.get_json(silent=True) or {}
        tag_ids = data.get('tagIds')
        if not isinstance(tag_ids, list):
            return error('标签ID列表不能为空', 400, 'INVALID_TAGS')
        if not all(isinstance(t, int) and not isinstance(t, bool) for t in tag_ids):
            return error('标签ID格式不正确', 400, 'INVALID_TAGS')

        tag_ids = list(dict.fromkeys(tag_ids))
        if tag_ids and Tag.query.filter(Tag.id.in_(tag_ids)).count() != len(tag_ids):
            return error('包含不存在的标签', 400, 'INVALID_TAGS')

        UserTag.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        for tag_id in tag_ids:
            db.session.add(UserTag(user_id=user_id, tag_id=tag_id))
        db.session.commit()

        return success(None, '标签更新成功')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'更新用户标签错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@user_bp.route('/activate-member', methods=['POST'])
@token_required
def activate_member(user_id):
    """激活卡密"""
    data = request.get_json(silent=True) or {}
    card_key = data.get('cardKey')
    if not card_key or not isinstance(card_key, str):
        return error('请输入卡密', 400, 'MISSING_CARD_KEY')

    current_app.logger.info(f'[激活卡密] 用户ID: {user_id}')
    try:
        result = activate_card_key(user_id, card_key)
    except CardKeyError as e:
        current_app.logger.info(f'[激活卡密] 失败: {e.message}')
        return error(e.message, e.status_code, e.code)
    except Exception as e:
        current_app.logger.error(f'激活卡密错误: {str(e)}')
        return error('激活失败，请稍后重试', 500, 'ACTIVATION_FAILED')

    return success(result, '会员激活成功')


@user_bp.route('/password', methods=['PUT'])
@token_required
def change_password(user_id):
    """修改密码"""
    try:
        data = request.get_json(silent=True) or {}
        old_password = data.get('oldPassword')
        new_password = data.get('newPassword')

        if not old_password or not new_password:
            return error('请输入完整信息', 400, 'MISSING_PARAMETERS')

        min_length = current_app.config['NEW_PASSWORD_MIN_LENGTH']
        if len(new_password) < min_length:
            return error(f'新密码至少{min_length}位', 400, 'INVALID_PASSWORD')

        user = db.session.get(User, user_id)
        if not user:
            return error('用户不存在', 404, 'USER_NOT_FOUND')

        if not verify_password(old_password, user.password_hash):
            return error('当前密码错误', 400, 'WRONG_PASSWORD')

        user.password_hash = hash_password(new_password)
        db.session.commit()

        current_app.logger.info(f'用户修改密码: {user_id}')
        return success(None, '密码修改成功')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'修改密码错误: {str(e)}')
        return error('修改失败，请稍后重试', 500, 'SERVER_ERROR')


@user_bp.route('/stats', methods=['GET'])
@token_required
def get_user_stats(user_id):
    """好友数、发送消息数、加入天数"""
    try:
        user = db.session.get(User, user_id)
        if not user:
            return error('用户不存在', 404, 'USER_NOT_FOUND')

        joined = user.created_at or datetime.utcnow()
        days = max(1, math.ceil((datetime.utcnow() - joined).total_seconds() / 86400))

        return success({
            'friends': Friend.query.filter_by(user_id=user_id).count(),
            'messages': Message.query.filter_by(sender_id=user_id).count(),
            'days': days,
        }, '获取统计信息成功')

    except Exception as e:
        current_app.logger.error(f'获取统计信息错误: {str(e)}')
        return error('获取统计信息失败', 500, 'SERVER_ERROR')
