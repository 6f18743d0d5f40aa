import random

from flask import Blueprint, current_app, request
from sqlalchemy import or_
from social_platform import db
from social_platform.membership import generate_card_keys
from social_platform.models import (BargainSession, CardKey, Conversation, ConversationMember, Friend,
                                    FriendRequest, Message, Notification, Tag, User,
                                    UserTag, seed_default_tags, seed_payment_counter)
from social_platform.utils import GENDERS, admin_required, generate_account_id, hash_password, iso, success, error

admin_bp = Blueprint('admin', __name__)

TEST_EMAIL = 'QWER1@qq.com'
TEST_PASSWORD = 'Test1234'
TEST_ACCOUNT_ID = 'TEST01'
BATCH_DEFAULT_COUNT = 1000
BATCH_MAX_COUNT = 5000

LAST_NAMES = ['张', '李', '王', '刘', '陈', '杨', '黄', '赵', '周', '吴', '徐', '孙', '马', '朱', '胡', '郭',
              '何', '高', '林', '罗', '郑', '梁', '谢', '宋', '唐', '许', '韩', '冯', '邓', '曹', '彭', '曾']
FIRST_NAMES = ['伟', '芳', '娜', '秀英', '敏', '静', '丽', '强', '磊', '军', '洋', '勇', '艳', '杰', '娟', '涛',
               '明', '超', '霞', '平', '刚', '华', '丹', '婷', '雪', '慧', '宇', '波', '鹏', '鑫', '琳', '浩']


def delete_user_data(user_id=None):
    """删除用户相关数据；user_id 为空时清空全部用户数据"""
    def scoped(query, *columns):
        if user_id is None:
            return query
        return query.filter(or_(*[column == user_id for column in columns]))

    scoped(CardKey.query.filter(CardKey.used_by.isnot(None)), CardKey.used_by) \
        .update({CardKey.used_by: None}, synchronize_session=False)
    scoped(BargainSession.query, BargainSession.user_id).delete(synchronize_session=False)
    scoped(Notification.query, Notification.user_id, Notification.related_user_id).delete(synchronize_session=False)
    scoped(Message.query, Message.sender_id).delete(synchronize_session=False)
    scoped(ConversationMember.query, ConversationMember.user_id).delete(synchronize_session=False)
    scoped(FriendRequest.query, FriendRequest.from_user_id, FriendRequest.to_user_id).delete(synchronize_session=False)
    scoped(Friend.query, Friend.user_id, Friend.friend_id).delete(synchronize_session=False)
    scoped(UserTag.query, UserTag.user_id).delete(synchronize_session=False)
    scoped(User.query, User.id).delete(synchronize_session=False)

    # 没有成员的会话一并删除
    orphaned = [c.id for c in Conversation.query.filter(~Conversation.members.any()).all()]
    if orphaned:
        Message.query.filter(Message.conversation_id.in_(orphaned)).delete(synchronize_session=False)
        Conversation.query.filter(Conversation.id.in_(orphaned)).delete(synchronize_session=False)


@admin_bp.route('/stats', methods=['GET'])
@admin_required
def get_stats():
    try:
        return success({
            'users': User.query.count(),
            'tags': Tag.query.count(),
            'userTags': UserTag.query.count(),
            'messages': Message.query.count(),
        })
    except Exception as e:
        current_app.logger.error(f'获取统计错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@admin_bp.route('/users', methods=['GET'])
@admin_required
def get_all_users():
    try:
        users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
        return success([{
            'id': user.id,
            'accountId': user.account_id,
            'email': user.email,
            'nickname': user.nickname,
            'gender': user.gender,
            'age': user.age,
            'isProfileSet': user.is_profile_set,
            'isMember': user.is_member,
            'createdAt': iso(user.created_at),
        } for user in users])
    except Exception as e:
        current_app.logger.error(f'获取用户列表错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    try:
        if not db.session.get(User, user_id):
            return error('用户不存在', 404, 'USER_NOT_FOUND')

        delete_user_data(user_id)
        db.session.commit()

        current_app.logger.info(f'[管理] 删除用户: {user_id}')
        return success(None, '用户删除成功')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'删除用户错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@admin_bp.route('/clear-all', methods=['POST'])
@admin_required
def clear_all_data():
    """清空所有用户数据，保留标签和卡密"""
    try:
        delete_user_data()
        db.session.commit()
        current_app.logger.warning('[管理] 已清空所有用户数据')
        return success(None, '所有数据已清空')
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'清空数据错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@admin_bp.route('/reset-database', methods=['POST'])
@admin_required
def reset_database():
    """清空全部表并重新写入默认数据"""
    try:
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        seed_default_tags()
        seed_payment_counter()

        current_app.logger.warning('[管理] 数据库已重置')
        return success(None, '数据库已重置')
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'重置数据库错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@admin_bp.route('/init-test-data', methods=['POST'])
@admin_required
def init_test_data():
    """只创建一个测试账号"""
    try:
        if User.query.filter_by(email=TEST_EMAIL.lower()).first():
            return success(None, '测试账号已存在')

        account_id = TEST_ACCOUNT_ID
        if User.query.filter_by(account_id=account_id).first():
            account_id = generate_account_id()

        db.session.add(User(
            account_id=account_id,
            email=TEST_EMAIL.lower(),
            password_hash=hash_password(TEST_PASSWORD),
            nickname='测试账号',
            gender='male',
            age=25,
            avatar_url='https://api.dicebear.com/7.x/avataaars/svg?seed=test',
            is_profile_set=True,
        ))
        db.session.commit()

        return success({'accountId': account_id},
                       f'测试账号已创建（邮箱：{TEST_EMAIL}，密码：{TEST_PASSWORD}）')
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'初始化测试数据错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@admin_bp.route('/create-batch-users', methods=['POST'])
@admin_required
def create_batch_users():
    """批量创建测试用户，所有账号共用同一个密码"""
    try:
        data = request.get_json(silent=True) or {}
        count = data.get('count', request.args.get('count', BATCH_DEFAULT_COUNT, type=int))
        if not isinstance(count, int) or isinstance(count, bool) or not 0 < count <= BATCH_MAX_COUNT:
            return error(f'数量必须在1到{BATCH_MAX_COUNT}之间', 400, 'INVALID_COUNT')

        password_hash = hash_password(TEST_PASSWORD)
        existing = {u.email for u in User.query.filter(User.email.like('testuser%@test.com')).all()}

        created = []
        for i in range(count):
            email = f'testuser{i + 1}@test.com'
            if email in existing:
                continue

            account_id = generate_account_id()
            user = User(
                account_id=account_id,
                email=email,
                password_hash=password_hash,
                nickname=random.choice(LAST_NAMES) + random.choice(FIRST_NAMES),
                gender=random.choice(GENDERS),
                age=random.randint(18, 60),
                avatar_url=f'https://api.dicebear.com/7.x/avataaars/svg?seed={account_id}',
                is_profile_set=True,
            )
            db.session.add(user)
            created.append({'accountId': account_id, 'email': email, 'nickname': user.nickname})

            if len(created) % 100 == 0:
                db.session.flush()
                current_app.logger.info(f'已创建 {len(created)}/{count} 个用户...')

        db.session.commit()
        current_app.logger.info(f'批量创建完成，成功创建 {len(created)} 个用户')

        return success({
            'successCount': len(created),
            'totalCount': count,
            'password': TEST_PASSWORD,
            'sampleUsers': created[:10],
        }, f'成功创建 {len(created)} 个测试用户（密码：{TEST_PASSWORD}）')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'批量创建用户错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@admin_bp.route('/assign-random-tags', methods=['POST'])
@admin_required
def assign_random_tags():
    """为已完善资料的用户随机分配3-6个标签"""
    try:
        tag_ids = [tag.id for tag in Tag.query.all()]
        if not tag_ids:
            return error('系统中没有可用标签', 400, 'NO_TAGS')

        users = User.query.filter_by(is_profile_set=True).all()
        for user in users:
            UserTag.query.filter_by(user_id=user.id).delete(synchronize_session=False)
            chosen = random.sample(tag_ids, min(random.randint(3, 6), len(tag_ids)))
            for tag_id in chosen:
                db.session.add(UserTag(user_id=user.id, tag_id=tag_id))
        db.session.commit()

        current_app.logger.info(f'标签分配完成，共 {len(users)} 个用户')
        return success({
            'successCount': len(users),
            'totalCount': len(users),
        }, f'成功为 {len(users)} 个用户分配随机标签')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'分配标签错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')


@admin_bp.route('/card-keys', methods=['POST'])
@admin_required
def create_card_keys():
    """批量生成卡密"""
    try:
        data = request.get_json(silent=True) or {}
        count = data.get('count', 1)
        duration_days = data.get('durationDays', current_app.config['CARD_KEY_DEFAULT_DAYS'])

        for value in (count, duration_days):
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                return error('数量和天数必须为正整数', 400, 'INVALID_PARAMETERS')
        if count > 500:
            return error('单次最多生成500个卡密', 400, 'INVALID_PARAMETERS')

        keys = generate_card_keys(count, duration_days)
        return success({'cardKeys': keys, 'durationDays': duration_days}, f'成功生成 {len(keys)} 个卡密', 201)

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'生成卡密错误: {str(e)}')
        return error('服务器错误', 500, 'SERVER_ERROR')
