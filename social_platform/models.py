from datetime import datetime
from social_platform import db


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.String(6), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    nickname = db.Column(db.String(50))
    avatar_url = db.Column(db.String(500))
    gender = db.Column(db.String(10))  # male / female / other
    age = db.Column(db.Integer)
    is_profile_set = db.Column(db.Boolean, default=False, nullable=False)
    is_member = db.Column(db.Boolean, default=False, nullable=False)
    member_expire_date = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user_tags = db.relationship('UserTag', back_populates='user', lazy='select')


class Tag(db.Model):
    __tablename__ = 'tags'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    category = db.Column(db.String(20), nullable=False)  # entertainment / food / movie / travel
    display_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class UserTag(db.Model):
    __tablename__ = 'user_tags'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    tag_id = db.Column(db.Integer, db.ForeignKey('tags.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', back_populates='user_tags')
    tag = db.relationship('Tag')


class Friend(db.Model):
    __tablename__ = 'friends'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    friend_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    remark_name = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    friend = db.relationship('User', foreign_keys=[friend_id])


class FriendRequest(db.Model):
    __tablename__ = 'friend_requests'
    PENDING = 'pending'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'

    id = db.Column(db.Integer, primary_key=True)
    from_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    to_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    status = db.Column(db.String(10), default=PENDING, nullable=False)
    message = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    from_user = db.relationship('User', foreign_keys=[from_user_id])


class Conversation(db.Model):
    __tablename__ = 'conversations'
    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(10), nullable=False)  # private / group / ai
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    members = db.relationship('ConversationMember', back_populates='conversation')


class ConversationMember(db.Model):
    __tablename__ = 'conversation_members'
    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversations.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    conversation = db.relationship('Conversation', back_populates='members')
    user = db.relationship('User')


class Message(db.Model):
    __tablename__ = 'messages'
    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey('conversations.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    sender = db.relationship('User')


class Notification(db.Model):
    __tablename__ = 'notifications'
    FRIEND_REQUEST = 'friend_request'
    FRIEND_ACCEPTED = 'friend_accepted'
    FRIEND_REJECTED = 'friend_rejected'
    SYSTEM = 'system'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(100), nullable=False)
    content = db.Column(db.String(500), nullable=False)
    related_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    related_data = db.Column(db.Text)  # JSON
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    related_user = db.relationship('User', foreign_keys=[related_user_id])


class LoginAttempt(db.Model):
    __tablename__ = 'login_attempts'
    id = db.Column(db.Integer, primary_key=True)
    account = db.Column(db.String(100), unique=True, nullable=False)  # 规范化后的账号
    failed_attempts = db.Column(db.Integer, default=0, nullable=False)
    is_frozen = db.Column(db.Boolean, default=False, nullable=False)
    frozen_until = db.Column(db.DateTime)
    last_attempt_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class CardKey(db.Model):
    __tablename__ = 'card_keys'
    UNUSED = 'unused'
    USED = 'used'

    id = db.Column(db.Integer, primary_key=True)
    card_key = db.Column(db.String(19), unique=True, nullable=False)
    status = db.Column(db.String(10), default=UNUSED, nullable=False)
    duration_days = db.Column(db.Integer, default=30, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    used_at = db.Column(db.DateTime)
    used_by = db.Column(db.Integer, db.ForeignKey('users.id'))


PAYMENT_COUNTER_ID = 1


class PaymentCounter(db.Model):
    __tablename__ = 'payment_counters'
    id = db.Column(db.Integer, primary_key=True)
    count = db.Column(db.Integer, default=0, nullable=False)


class BargainSession(db.Model):
    __tablename__ = 'bargain_sessions'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    current_price = db.Column(db.Float, nullable=False)
    remaining_turns = db.Column(db.Integer, nullable=False)
    transcript = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


DEFAULT_TAGS = {
    'entertainment': ['游戏', '音乐', '运动', '摄影', '阅读', '动漫'],
    'food': ['火锅', '烧烤', '甜品', '咖啡', '川菜', '日料'],
    'movie': ['科幻', '喜剧', '悬疑', '爱情', '动作', '纪录片'],
    'travel': ['自驾', '徒步', '海岛', '古镇', '露营', '出境游'],
}


def seed_default_tags():
    """标签表为空时写入默认标签"""
    if Tag.query.count() > 0:
        return
    for category, names in DEFAULT_TAGS.items():
        for order, name in enumerate(names):
            db.session.add(Tag(name=name, category=category, display_order=order))
    db.session.commit()


def seed_payment_counter():
    """写入唯一的支付计数行"""
    if db.session.get(PaymentCounter, PAYMENT_COUNTER_ID) is None:
        db.session.add(PaymentCounter(id=PAYMENT_COUNTER_ID, count=0))
        db.session.commit()
