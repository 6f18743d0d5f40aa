from collections import Counter

from flask import Blueprint, current_app, request
from sqlalchemy import or_
from social_platform import db
from social_platform.models import Friend, FriendRequest, Notification, User, UserTag
from social_platform.routes.notifications import create_notification
from social_platform.utils import token_required, serialize_user, brief_user, iso, success, error

social_bp = Blueprint('social', __name__)

SEARCH_LIMIT = 50
RECOMMEND_LIMIT = 20


def tags_by_user(user_ids):
    """{user_id: [标签名]}"""
    result = {user_id: [] for user_id in user_ids}
    if not user_ids:
        return result
    for ut in UserTag.query.filter(UserTag.user_id.in_(user_ids)).all():
        if ut.tag is not None:
            result[ut.user_id].append(ut.tag.name)
    return result


@social_bp.route('/search', methods=['GET'])
@token_required
def search_users(user_id):
    """通过账号或昵称搜索用户"""
    try:
        query = (request.args.get('query') or '').strip()
        if not query:
            return error('请输入搜索关键词', 400, 'MISSING_QUERY')

        pattern = f'%{query}%'
        users = User.query.filter(
            User.id != user_id,
            or_(User.account_id.like(pattern), User.nickname.like(pattern)),
        ).limit(SEARCH_LIMIT).all()

        tags = tags_by_user([u.id for u in users])
        return success([dict(serialize_user(u), tags=tags[u.id]) for u in users])

    except Exception as e:
        current_app.logger.error(f'搜索用户错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@social_bp.route('/recommend', methods=['GET'])
@token_required
def recommend_users(user_id):
    """按共同标签数推荐用户；没有标签时返回最新注册的用户"""
    try:
        my_tag_ids = [ut.tag_id for ut in UserTag.query.filter_by(user_id=user_id).all()]

        if not my_tag_ids:
            users = User.query.filter(User.id != user_id, User.is_profile_set.is_(True)) \
                .order_by(User.created_at.desc(), User.id.desc()).limit(RECOMMEND_LIMIT).all()
            tags = tags_by_user([u.id for u in users])
            return success([dict(serialize_user(u), tags=tags[u.id], matchCount=0) for u in users])

        matches = UserTag.query.filter(
            UserTag.tag_id.in_(my_tag_ids),
            UserTag.user_id != user_id,
        ).all()
        match_count = Counter(ut.user_id for ut in matches)
        top_ids = [uid for uid, _ in match_count.most_common(RECOMMEND_LIMIT)]
        if not top_ids:
            return success([])

        users = User.query.filter(User.id.in_(top_ids), User.is_profile_set.is_(True)).all()
        tags = tags_by_user([u.id for u in users])
        results = [dict(serialize_user(u), tags=tags[u.id], matchCount=match_count[u.id]) for u in users]
        results.sort(key=lambda r: r['matchCount'], reverse=True)
        return success(results)

    except Exception as e:
        current_app.logger.error(f'推荐用户错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@social_bp.route('/friend-request', methods=['POST'])
@token_required
def send_friend_request(user_id):
    """发送好友申请"""
    try:
        data = request.get_json(silent=True) or {}
        to_account_id = (data.get('toAccountId') or '').strip()
        message = (data.get('message') or '')[:200]

        if not to_account_id:
            return error('请提供对方账号', 400, 'MISSING_PARAMETERS')

        to_user = User.query.filter_by(account_id=to_account_id).first()
        if not to_user:
            return error('用户不存在', 404, 'USER_NOT_FOUND')

        if to_user.id == user_id:
            return error('不能添加自己为好友', 400, 'SELF_REQUEST')

        if Friend.query.filter_by(user_id=user_id, friend_id=to_user.id).first():
            return error('已经是好友了', 400, 'ALREADY_FRIENDS')

        if FriendRequest.query.filter_by(from_user_id=user_id, to_user_id=to_user.id,
                                         status=FriendRequest.PENDING).first():
            return error('已经发送过好友申请了', 400, 'REQUEST_EXISTS')

        friend_request = FriendRequest(
            from_user_id=user_id,
            to_user_id=to_user.id,
            status=FriendRequest.PENDING,
            message=message,
        )
        db.session.add(friend_request)
        db.session.flush()

        from_user = db.session.get(User, user_id)
        create_notification(
            to_user.id,
            Notification.FRIEND_REQUEST,
            '新的好友申请',
            f"{(from_user.nickname if from_user else None) or '用户'} 向你发送了好友申请",
            related_user_id=user_id,
            related_data={'requestId': friend_request.id, 'message': message},
        )
        db.session.commit()

        return success({
            'requestId': friend_request.id,
            'status': friend_request.status,
        }, '好友申请已发送')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'发送好友申请错误: {str(e)}')
        return error('发送好友申请失败', 500, 'SERVER_ERROR')


@social_bp.route('/friend-request/<int:request_id>/handle', methods=['POST'])
@token_required
def handle_friend_request(user_id, request_id):
    """接受或拒绝好友申请"""
    try:
        data = request.get_json(silent=True) or {}
        action = data.get('action')
        if action not in ('accept', 'reject'):
            return error('无效的操作', 400, 'INVALID_ACTION')

        friend_request = FriendRequest.query.filter_by(
            id=request_id, to_user_id=user_id, status=FriendRequest.PENDING
        ).with_for_update().first()
        if not friend_request:
            return error('好友申请不存在或已处理', 404, 'REQUEST_NOT_FOUND')

        from_user_id = friend_request.from_user_id
        current_user = db.session.get(User, user_id)
        name = (current_user.nickname if current_user else None) or '用户'

        if action == 'accept':
            friend_request.status = FriendRequest.ACCEPTED
            # 双向好友关系
            for a, b in ((user_id, from_user_id), (from_user_id, user_id)):
                if not Friend.query.filter_by(user_id=a, friend_id=b).first():
                    db.session.add(Friend(user_id=a, friend_id=b))
            create_notification(from_user_id, Notification.FRIEND_ACCEPTED,
                                '好友申请已通过', f'{name} 接受了你的好友申请', related_user_id=user_id)
            message = '已添加为好友'
        else:
            friend_request.status = FriendRequest.REJECTED
            create_notification(from_user_id, Notification.FRIEND_REJECTED,
                                '好友申请已拒绝', f'{name} 拒绝了你的好友申请', related_user_id=user_id)
            message = '已拒绝好友申请'

        db.session.commit()
        return success(None, message)

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'处理好友申请错误: {str(e)}')
        return error('处理好友申请失败', 500, 'SERVER_ERROR')


@social_bp.route('/friends', methods=['GET'])
@token_required
def list_friends(user_id):
    try:
        friends = Friend.query.filter_by(user_id=user_id).order_by(Friend.created_at.desc()).all()
        return success([
            dict(brief_user(f.friend), remarkName=f.remark_name, since=iso(f.created_at))
            for f in friends if f.friend is not None
        ])
    except Exception as e:
        current_app.logger.error(f'获取好友列表错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@social_bp.route('/friend-requests', methods=['GET'])
@token_required
def list_friend_requests(user_id):
    """收到的待处理好友申请"""
    try:
        requests_ = FriendRequest.query.filter_by(to_user_id=user_id, status=FriendRequest.PENDING) \
            .order_by(FriendRequest.created_at.desc()).all()
        return success([{
            'id': r.id,
            'fromUser': brief_user(r.from_user),
            'message': r.message,
            'status': r.status,
            'createdAt': iso(r.created_at),
        } for r in requests_])
    except Exception as e:
        current_app.logger.error(f'获取好友申请错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')
