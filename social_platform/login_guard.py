"""
登录失败冻结

按规范化后的账号统计连续失败次数，达到阈值后冻结
``base * 2 ** ((failed - threshold) // threshold)`` 分钟。冻结到期后在下一次访问时
解除，但保留失败次数；登录成功则删除记录。

存储对象需提供 transaction / load / increment / freeze / unfreeze / delete：
increment 和 delete 在账号处于冻结期时不做修改并返回 None / False，
保证并发请求不会越过冻结继续计数。
"""
import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from social_platform import db
from social_platform.models import LoginAttempt

logger = logging.getLogger(__name__)

NOT_FOUND_THRESHOLD = 5
WRONG_PASSWORD_THRESHOLD = 3
BASE_FREEZE_MINUTES = 10


class AttemptConflict(Exception):
    """同一账号的失败记录被并发创建"""


@dataclass
class AttemptRecord:
    account: str
    failed_attempts: int = 0
    is_frozen: bool = False
    frozen_until: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None

    def frozen_at(self, now):
        return self.is_frozen and self.frozen_until is not None and self.frozen_until > now


@dataclass(frozen=True)
class GuardResult:
    allowed: bool
    freeze_minutes: Optional[int] = None
    attempts_remaining: Optional[int] = None
    just_frozen: bool = False


def normalize_account(account_key):
    return (account_key or '').strip().lower()


def freeze_duration(failed_attempts, threshold, base_minutes=BASE_FREEZE_MINUTES):
    """达到阈值后的冻结分钟数"""
    return base_minutes * 2 ** ((failed_attempts - threshold) // threshold)


def remaining_minutes(frozen_until, now):
    remaining_ms = (frozen_until - now).total_seconds() * 1000
    return max(1, math.ceil(remaining_ms / 60000))


class LoginGuard:
    def __init__(self, store, base_freeze_minutes=BASE_FREEZE_MINUTES, clock=datetime.utcnow, max_retries=3):
        self.store = store
        self.base_freeze_minutes = base_freeze_minutes
        self.clock = clock
        self.max_retries = max_retries

    def check(self, account_key):
        """冻结期内拒绝；已过期的冻结顺便解除"""
        account = normalize_account(account_key)
        with self.store.transaction():
            return self._check_frozen(account, self.clock())

    def check_and_record_attempt(self, account_key, success, threshold=None):
        if not success and (threshold is None or threshold < 1):
            raise ValueError('threshold is required for failed attempts')
        account = normalize_account(account_key)

        for _ in range(self.max_retries):
            try:
                with self.store.transaction():
                    now = self.clock()
                    status = self._check_frozen(account, now)
                    if not status.allowed:
                        return status
                    if success:
                        if not self.store.delete(account, now):
                            return self._frozen_result(account, now)
                        return GuardResult(allowed=True)
                    return self._record_failure(account, threshold, now)
            except AttemptConflict:
                logger.info(f'失败记录被并发创建，重试: {account}')
        raise AttemptConflict(account)

    def record_failure(self, account_key, threshold):
        return self.check_and_record_attempt(account_key, False, threshold)

    def record_success(self, account_key):
        return self.check_and_record_attempt(account_key, True)

    def _check_frozen(self, account, now):
        record = self.store.load(account)
        if record is None or not record.is_frozen:
            return GuardResult(allowed=True)
        if record.frozen_at(now):
            return GuardResult(allowed=False, freeze_minutes=remaining_minutes(record.frozen_until, now))
        self.store.unfreeze(account)
        return GuardResult(allowed=True)

    def _frozen_result(self, account, now):
        # 检查之后被其他请求冻结
        record = self.store.load(account)
        if record is None or not record.frozen_at(now):
            raise AttemptConflict(account)
        return GuardResult(allowed=False, freeze_minutes=remaining_minutes(record.frozen_until, now))

    def _record_failure(self, account, threshold, now):
        record = self.store.increment(account, now)
        if record is None:
            return self._frozen_result(account, now)
        if record.failed_attempts >= threshold:
            minutes = freeze_duration(record.failed_attempts, threshold, self.base_freeze_minutes)
            self.store.freeze(account, now + timedelta(minutes=minutes))
            logger.warning(f'账号 {account} 连续失败 {record.failed_attempts} 次，冻结 {minutes} 分钟')
            return GuardResult(allowed=False, freeze_minutes=minutes, attempts_remaining=0, just_frozen=True)
        return GuardResult(allowed=True, attempts_remaining=threshold - record.failed_attempts)


class InMemoryLoginAttemptStore:
    """字典存储，可重入锁串行化事务，用于测试"""

    def __init__(self):
        self.records = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self):
        with self._lock:
            snapshot = {k: replace(v) for k, v in self.records.items()}
            try:
                yield
            except Exception:
                self.records = snapshot
                raise

    def load(self, account):
        record = self.records.get(account)
        return replace(record) if record else None

    def increment(self, account, now):
        record = self.records.setdefault(account, AttemptRecord(account=account))
        if record.frozen_at(now):
            return None
        record.failed_attempts += 1
        record.last_attempt_at = now
        return replace(record)

    def freeze(self, account, until):
        record = self.records[account]
        record.is_frozen = True
        record.frozen_until = until

    def unfreeze(self, account):
        record = self.records.get(account)
        if record:
            record.is_frozen = False
            record.frozen_until = None

    def delete(self, account, now):
        record = self.records.get(account)
        if record and record.frozen_at(now):
            return False
        self.records.pop(account, None)
        return True


class SqlAlchemyLoginAttemptStore:
    """
    login_attempts 表存储。

    计数和删除都带 "未冻结或冻结已过期" 条件，写锁从第一条 UPDATE 持有到提交，
    因此在 SQLite 上 FOR UPDATE 不生效时，冻结后的并发请求也不会再计数。
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    @contextmanager
    def transaction(self):
        try:
            yield
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise AttemptConflict(str(e)) from e
        except Exception:
            self.session.rollback()
            raise

    def _query(self, account):
        return self.session.query(LoginAttempt).filter_by(account=account)

    def _not_frozen(self, account, now):
        return self._query(account).filter(or_(
            LoginAttempt.is_frozen.is_(False),
            LoginAttempt.frozen_until.is_(None),
            LoginAttempt.frozen_until <= now,
        ))

    def load(self, account):
        row = self._query(account).with_for_update().populate_existing().first()
        return self._to_record(row) if row else None

    def increment(self, account, now):
        updated = self._not_frozen(account, now).update(
            {
                LoginAttempt.failed_attempts: LoginAttempt.failed_attempts + 1,
                LoginAttempt.last_attempt_at: now,
            },
            synchronize_session=False,
        )
        if not updated:
            if self._query(account).first() is not None:
                return None
            self.session.add(LoginAttempt(account=account, failed_attempts=1,
                                          is_frozen=False, last_attempt_at=now))
            self.session.flush()
        row = self._query(account).populate_existing().one()
        return self._to_record(row)

    def freeze(self, account, until):
        self._query(account).update(
            {LoginAttempt.is_frozen: True, LoginAttempt.frozen_until: until},
            synchronize_session=False,
        )

    def unfreeze(self, account):
        self._query(account).update(
            {LoginAttempt.is_frozen: False, LoginAttempt.frozen_until: None},
            synchronize_session=False,
        )

    def delete(self, account, now):
        deleted = self._not_frozen(account, now).delete(synchronize_session=False)
        if deleted:
            return True
        return self._query(account).first() is None

    @staticmethod
    def _to_record(row):
        return AttemptRecord(
            account=row.account,
            failed_attempts=row.failed_attempts or 0,
            is_frozen=bool(row.is_frozen),
            frozen_until=row.frozen_until,
            last_attempt_at=row.last_attempt_at,
        )
