import threading
from datetime import datetime, timedelta

import pytest

from social_platform import create_app, db, init_db
from social_platform.config import TestConfig
from social_platform.membership import (CardKeyError, activate_card_key, generate_card_key,
                                        generate_card_keys, normalize_card_key)
from social_platform.models import CardKey, User
from tests.conftest import register, auth_headers


def add_user(email):
    user = User(account_id=str(100000 + User.query.count()), email=email, password_hash='x')
    db.session.add(user)
    db.session.commit()
    return user


def add_key(key='ABCD-EFGH-JKLM-NPQR', days=30, status=CardKey.UNUSED):
    db.session.add(CardKey(card_key=key, duration_days=days, status=status))
    db.session.commit()
    return key


def test_normalize_card_key():
    assert normalize_card_key('abcd-efgh-jklm-npqr') == 'ABCD-EFGH-JKLM-NPQR'
    assert normalize_card_key('ABCDEFGHJKLMNPQR') == 'ABCD-EFGH-JKLM-NPQR'
    assert normalize_card_key(' ab cd-efgh jklmnpqr ') == 'ABCD-EFGH-JKLM-NPQR'


def test_generate_card_key_format():
    key = generate_card_key()
    assert len(key) == 19
    assert key.count('-') == 3
    assert key == normalize_card_key(key)


def test_generate_card_keys_are_unique(app):
    keys = generate_card_keys(20, 7)
    assert len(set(keys)) == 20
    assert CardKey.query.filter_by(status=CardKey.UNUSED, duration_days=7).count() == 20


def test_activation_starts_membership_from_now(app):
    user = add_user('new@example.com')
    key = add_key(days=30)
    now = datetime(2024, 5, 1, 8, 0, 0)

    result = activate_card_key(user.id, key.lower().replace('-', ''), now=now)

    assert result['isMember'] is True
    assert result['durationDays'] == 30
    db.session.refresh(user)
    assert user.is_member
    assert user.member_expire_date == now + timedelta(days=30)

    record = CardKey.query.filter_by(card_key=key).one()
    assert record.status == CardKey.USED
    assert record.used_by == user.id
    assert record.used_at == now


def test_activation_extends_unexpired_membership(app):
    now = datetime(2024, 5, 1)
    user = add_user('member@example.com')
    user.is_member = True
    user.member_expire_date = now + timedelta(days=10)
    db.session.commit()
    key = add_key(days=30)

    activate_card_key(user.id, key, now=now)

    db.session.refresh(user)
    assert user.member_expire_date == now + timedelta(days=40)


def test_expired_membership_restarts_from_now(app):
    now = datetime(2024, 5, 1)
    user = add_user('lapsed@example.com')
    user.is_member = True
    user.member_expire_date = now - timedelta(days=3)
    db.session.commit()
    key = add_key(days=7)

    activate_card_key(user.id, key, now=now)

    db.session.refresh(user)
    assert user.member_expire_date == now + timedelta(days=7)


def test_used_key_is_rejected_without_mutation(app):
    user = add_user('late@example.com')
    key = add_key(status=CardKey.USED)

    with pytest.raises(CardKeyError) as excinfo:
        activate_card_key(user.id, key)
    assert excinfo.value.code == 'CARD_KEY_USED'
    assert excinfo.value.message == '卡密已被使用'

    db.session.refresh(user)
    assert not user.is_member
    assert user.member_expire_date is None
    assert CardKey.query.filter_by(card_key=key).one().used_by is None


def test_unknown_key_is_rejected(app):
    user = add_user('nokey@example.com')
    with pytest.raises(CardKeyError) as excinfo:
        activate_card_key(user.id, 'ZZZZ-ZZZZ-ZZZZ-ZZZZ')
    assert excinfo.value.message == '卡密不存在'
    assert excinfo.value.status_code == 400


def test_second_redemption_fails(app):
    first = add_user('first@example.com')
    second = add_user('second@example.com')
    key = add_key()

    activate_card_key(first.id, key)
    with pytest.raises(CardKeyError):
        activate_card_key(second.id, key)

    db.session.refresh(second)
    assert not second.is_member


def test_activate_member_endpoint(client):
    data = register(client, 'api@example.com')
    key = add_key(days=15)

    resp = client.post('/api/user/activate-member', json={'cardKey': key.lower()},
                       headers=auth_headers(data['token']))
    assert resp.status_code == 200
    assert resp.get_json()['data']['durationDays'] == 15

    resp = client.post('/api/user/activate-member', json={'cardKey': key},
                       headers=auth_headers(data['token']))
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'CARD_KEY_USED'

    resp = client.post('/api/user/activate-member', json={}, headers=auth_headers(data['token']))
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'MISSING_CARD_KEY'


def test_concurrent_redemption_has_exactly_one_winner(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'cards.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        init_db()
        user_ids = [add_user(f'racer{i}@example.com').id for i in range(6)]
        key = add_key(days=30)

    barrier = threading.Barrier(len(user_ids))
    outcomes = {}

    def redeem(user_id):
        with app.app_context():
            barrier.wait()
            try:
                activate_card_key(user_id, key)
                outcomes[user_id] = 'ok'
            except Exception as e:
                outcomes[user_id] = e
            finally:
                db.session.remove()

    threads = [threading.Thread(target=redeem, args=(uid,)) for uid in user_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [uid for uid, outcome in outcomes.items() if outcome == 'ok']
    assert len(winners) == 1

    with app.app_context():
        record = CardKey.query.filter_by(card_key=key).one()
        assert record.used_by == winners[0]
        assert User.query.filter_by(is_member=True).count() == 1
        db.session.remove()
        db.drop_all()
