import json

from flask import Blueprint, current_app, request
from social_platform import db
from social_platform.models import Notification
from social_platform.utils import token_required, brief_user, iso, success, error

notifications_bp = Blueprint('notifications', __name__)


def create_notification(user_id, type, title, content, related_user_id=None, related_data=None):
    """添加通知到当前会话，由调用方提交"""
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        content=content,
        related_user_id=related_user_id,
        related_data=json.dumps(related_data, ensure_ascii=False) if related_data else None,
        is_read=False,
    )
    db.session.add(notification)
    return notification


def serialize_notification(n):
    return {
        'id': n.id,
        'type': n.type,
        'title': n.title,
        'content': n.content,
        'isRead': n.is_read,
        'createdAt': iso(n.created_at),
        'relatedUser': brief_user(n.related_user),
        'relatedData': json.loads(n.related_data) if n.related_data else None,
    }


def _paging():
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)
    return max(1, min(limit, 100)), max(0, offset)


@notifications_bp.route('', methods=['GET'])
@notifications_bp.route('/', methods=['GET'])
@token_required
def get_notifications(user_id):
    try:
        limit, offset = _paging()
        notifications = Notification.query.filter_by(user_id=user_id) \
            .order_by(Notification.created_at.desc(), Notification.id.desc()) \
            .limit(limit).offset(offset).all()
        unread_count = Notification.query.filter_by(user_id=user_id, is_read=False).count()

        return success({
            'notifications': [serialize_notification(n) for n in notifications],
            'unreadCount': unread_count,
        }, '获取通知成功')
    except Exception as e:
        current_app.logger.error(f'获取通知失败: {str(e)}')
        return error('获取通知失败', 500, 'SERVER_ERROR')


@notifications_bp.route('/unread-count', methods=['GET'])
@token_required
def get_unread_count(user_id):
    try:
        count = Notification.query.filter_by(user_id=user_id, is_read=False).count()
        return success({'count': count}, '获取未读数量成功')
    except Exception as e:
        current_app.logger.error(f'获取未读数量失败: {str(e)}')
        return error('获取未读数量失败', 500, 'SERVER_ERROR')


@notifications_bp.route('/read-all', methods=['PUT'])
@token_required
def mark_all_as_read(user_id):
    try:
        Notification.query.filter_by(user_id=user_id, is_read=False) \
            .update({Notification.is_read: True}, synchronize_session=False)
        db.session.commit()
        return success(None, '全部标记成功')
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'标记全部已读失败: {str(e)}')
        return error('标记全部已读失败', 500, 'SERVER_ERROR')


@notifications_bp.route('/<int:notification_id>/read', methods=['PUT'])
@token_required
def mark_as_read(user_id, notification_id):
    try:
        notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if not notification:
            return error('通知不存在', 404, 'NOTIFICATION_NOT_FOUND')
        notification.is_read = True
        db.session.commit()
        return success(None, '标记成功')
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'标记已读失败: {str(e)}')
        return error('标记已读失败', 500, 'SERVER_ERROR')


@notifications_bp.route('/<int:notification_id>', methods=['DELETE'])
@token_required
def delete_notification(user_id, notification_id):
    try:
        notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if not notification:
            return error('通知不存在', 404, 'NOTIFICATION_NOT_FOUND')
        db.session.delete(notification)
        db.session.commit()
        return success(None, '删除成功')
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'删除通知失败: {str(e)}')
        return error('删除通知失败', 500, 'SERVER_ERROR')
