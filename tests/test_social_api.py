from social_platform.models import Friend, Tag


def tag_ids(names):
    return [t.id for t in Tag.query.filter(Tag.name.in_(names)).all()]


def test_search_by_nickname_and_account(client, make_user):
    alice, alice_headers = make_user('alice@example.com', nickname='Alice')
    bob, _ = make_user('bob@example.com', nickname='Bobby')

    resp = client.get('/api/social/search?query=bob', headers=alice_headers)
    assert resp.status_code == 200
    assert [u['id'] for u in resp.get_json()['data']] == [bob['id']]

    resp = client.get(f"/api/social/search?query={bob['accountId']}", headers=alice_headers)
    assert [u['accountId'] for u in resp.get_json()['data']] == [bob['accountId']]

    # never returns the caller
    resp = client.get('/api/social/search?query=Alice', headers=alice_headers)
    assert resp.get_json()['data'] == []

    resp = client.get('/api/social/search', headers=alice_headers)
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'MISSING_QUERY'


def test_recommend_orders_by_shared_tags(client, make_user):
    _, me = make_user('me@example.com')
    close, close_headers = make_user('close@example.com')
    far, far_headers = make_user('far@example.com')

    client.post('/api/user/tags', json={'tagIds': tag_ids(['游戏', '火锅', '科幻'])}, headers=me)
    client.post('/api/user/tags', json={'tagIds': tag_ids(['游戏', '火锅', '露营'])}, headers=close_headers)
    client.post('/api/user/tags', json={'tagIds': tag_ids(['科幻'])}, headers=far_headers)

    resp = client.get('/api/social/recommend', headers=me)
    data = resp.get_json()['data']
    assert [u['id'] for u in data] == [close['id'], far['id']]
    assert data[0]['matchCount'] == 2
    assert sorted(data[0]['tags']) == sorted(['游戏', '火锅', '露营'])


def test_recommend_without_tags_falls_back_to_newest(client, make_user):
    _, me = make_user('me@example.com')
    other, _ = make_user('other@example.com')

    data = client.get('/api/social/recommend', headers=me).get_json()['data']
    assert [u['id'] for u in data] == [other['id']]
    assert data[0]['matchCount'] == 0


def test_friend_request_accept_flow(client, make_user):
    alice, alice_headers = make_user('alice@example.com', nickname='Alice')
    bob, bob_headers = make_user('bob@example.com', nickname='Bob')

    resp = client.post('/api/social/friend-request', json={'toAccountId': bob['accountId'], 'message': 'hi'},
                       headers=alice_headers)
    assert resp.status_code == 200
    request_id = resp.get_json()['data']['requestId']

    resp = client.post('/api/social/friend-request', json={'toAccountId': bob['accountId']},
                       headers=alice_headers)
    assert resp.get_json()['code'] == 'REQUEST_EXISTS'

    pending = client.get('/api/social/friend-requests', headers=bob_headers).get_json()['data']
    assert [r['id'] for r in pending] == [request_id]
    assert pending[0]['fromUser']['id'] == alice['id']

    notes = client.get('/api/notifications', headers=bob_headers).get_json()['data']
    assert notes['unreadCount'] == 1
    assert notes['notifications'][0]['relatedData']['requestId'] == request_id

    resp = client.post(f'/api/social/friend-request/{request_id}/handle', json={'action': 'accept'},
                       headers=bob_headers)
    assert resp.status_code == 200
    assert Friend.query.filter_by(user_id=alice['id'], friend_id=bob['id']).count() == 1
    assert Friend.query.filter_by(user_id=bob['id'], friend_id=alice['id']).count() == 1

    friends = client.get('/api/social/friends', headers=alice_headers).get_json()['data']
    assert [f['id'] for f in friends] == [bob['id']]

    resp = client.post('/api/social/friend-request', json={'toAccountId': bob['accountId']},
                       headers=alice_headers)
    assert resp.get_json()['code'] == 'ALREADY_FRIENDS'

    # already handled
    resp = client.post(f'/api/social/friend-request/{request_id}/handle', json={'action': 'reject'},
                       headers=bob_headers)
    assert resp.status_code == 404


def test_friend_request_reject_and_errors(client, make_user):
    alice, alice_headers = make_user('alice@example.com')
    bob, bob_headers = make_user('bob@example.com')

    resp = client.post('/api/social/friend-request', json={'toAccountId': alice['accountId']},
                       headers=alice_headers)
    assert resp.get_json()['code'] == 'SELF_REQUEST'

    resp = client.post('/api/social/friend-request', json={'toAccountId': '000000'}, headers=alice_headers)
    assert resp.status_code == 404

    request_id = client.post('/api/social/friend-request', json={'toAccountId': bob['accountId']},
                             headers=alice_headers).get_json()['data']['requestId']

    # only the recipient can handle it
    resp = client.post(f'/api/social/friend-request/{request_id}/handle', json={'action': 'accept'},
                       headers=alice_headers)
    assert resp.status_code == 404

    resp = client.post(f'/api/social/friend-request/{request_id}/handle', json={'action': 'maybe'},
                       headers=bob_headers)
    assert resp.get_json()['code'] == 'INVALID_ACTION'

    resp = client.post(f'/api/social/friend-request/{request_id}/handle', json={'action': 'reject'},
                       headers=bob_headers)
    assert resp.status_code == 200
    assert Friend.query.count() == 0

    notes = client.get('/api/notifications', headers=alice_headers).get_json()['data']['notifications']
    assert notes[0]['type'] == 'friend_rejected'
