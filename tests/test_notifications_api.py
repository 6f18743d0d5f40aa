from social_platform import db
from social_platform.models import Notification
from social_platform.routes.notifications import create_notification


def seed(user_id, count):
    for i in range(count):
        create_notification(user_id, Notification.SYSTEM, f'通知{i}', f'内容{i}')
    db.session.commit()


def test_list_and_unread_count(client, make_user):
    user, headers = make_user('alice@example.com')
    seed(user['id'], 3)

    data = client.get('/api/notifications', headers=headers).get_json()['data']
    assert len(data['notifications']) == 3
    assert data['unreadCount'] == 3

    resp = client.get('/api/notifications/unread-count', headers=headers)
    assert resp.get_json()['data']['count'] == 3


def test_mark_read_and_delete(client, make_user):
    user, headers = make_user('alice@example.com')
    other, other_headers = make_user('bob@example.com')
    seed(user['id'], 2)
    ids = [n.id for n in Notification.query.filter_by(user_id=user['id']).all()]

    assert client.put(f'/api/notifications/{ids[0]}/read', headers=headers).status_code == 200
    assert client.get('/api/notifications/unread-count', headers=headers).get_json()['data']['count'] == 1

    # another user's notification is invisible
    assert client.put(f'/api/notifications/{ids[1]}/read', headers=other_headers).status_code == 404
    assert client.delete(f'/api/notifications/{ids[1]}', headers=other_headers).status_code == 404

    assert client.put('/api/notifications/read-all', headers=headers).status_code == 200
    assert client.get('/api/notifications/unread-count', headers=headers).get_json()['data']['count'] == 0

    assert client.delete(f'/api/notifications/{ids[0]}', headers=headers).status_code == 200
    assert Notification.query.filter_by(user_id=user['id']).count() == 1
    assert client.delete(f'/api/notifications/{ids[0]}', headers=headers).status_code == 404
