import logging
import secrets
import string
from datetime import datetime, timedelta

from social_platform import db
from social_platform.models import CardKey, User

logger = logging.getLogger(__name__)

CARD_KEY_ALPHABET = string.ascii_uppercase + string.digits
CARD_KEY_LENGTH = 16


class CardKeyError(Exception):
    def __init__(self, message, status_code=400, code='CARD_KEY_ERROR'):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


def normalize_card_key(raw_key):
    """去掉分隔符并转大写，按4位一组用 '-' 连接"""
    clean = (raw_key or '').replace('-', '').replace(' ', '').strip().upper()
    return '-'.join(clean[i:i + 4] for i in range(0, len(clean), 4))


def generate_card_key():
    return normalize_card_key(''.join(secrets.choice(CARD_KEY_ALPHABET) for _ in range(CARD_KEY_LENGTH)))


def generate_card_keys(count, duration_days):
    """批量生成未使用的卡密"""
    keys = set()
    while len(keys) < count:
        key = generate_card_key()
        if key not in keys and not CardKey.query.filter_by(card_key=key).first():
            keys.add(key)
    try:
        for key in keys:
            db.session.add(CardKey(card_key=key, status=CardKey.UNUSED, duration_days=duration_days))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f'生成卡密 {count} 个（{duration_days} 天）')
    return sorted(keys)


def activate_card_key(user_id, raw_key, now=None):
    """
    激活卡密并开通/续期会员。

    卡密行加锁读取，再以 status='unused' 为条件更新，保证同一卡密只能成功
    兑换一次；任何失败都会回滚整个事务。
    """
    key = normalize_card_key(raw_key)
    now = now or datetime.utcnow()

    try:
        record = CardKey.query.filter_by(card_key=key).with_for_update().first()
        if not record:
            raise CardKeyError('卡密不存在', 400, 'CARD_KEY_NOT_FOUND')
        if record.status == CardKey.USED:
            raise CardKeyError('卡密已被使用', 400, 'CARD_KEY_USED')
        duration_days = record.duration_days

        user = db.session.get(User, user_id)
        if not user:
            raise CardKeyError('用户不存在', 404, 'USER_NOT_FOUND')

        claimed = CardKey.query.filter_by(id=record.id, status=CardKey.UNUSED).update(
            {
                CardKey.status: CardKey.USED,
                CardKey.used_at: now,
                CardKey.used_by: user_id,
            },
            synchronize_session=False,
        )
        if claimed != 1:
            raise CardKeyError('卡密已被使用', 400, 'CARD_KEY_USED')

        if user.is_member and user.member_expire_date and user.member_expire_date > now:
            expire_date = user.member_expire_date + timedelta(days=duration_days)
            logger.info(f'用户 {user_id} 续期会员 {duration_days} 天')
        else:
            expire_date = now + timedelta(days=duration_days)
            logger.info(f'用户 {user_id} 开通会员 {duration_days} 天')

        user.is_member = True
        user.member_expire_date = expire_date
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return {
        'isMember': True,
        'memberExpireDate': expire_date.isoformat(),
        'durationDays': duration_days,
    }
