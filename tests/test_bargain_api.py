import threading

import pytest

from social_platform import create_app, db, init_db
from social_platform.config import TestConfig
from social_platform.llm import LLMServiceError
from social_platform.models import BargainSession
from tests.conftest import auth_headers, register


class FakeChatClient:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def chat(self, messages, temperature=0.7, model=None):
        self.calls.append(messages)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def fake_llm(app):
    def install(*replies):
        fake = FakeChatClient(replies)
        app.extensions['llm_client'] = fake
        return fake
    return install


def start(client, headers):
    resp = client.post('/api/bargain/sessions', headers=headers)
    assert resp.status_code == 201
    return resp.get_json()['data']


def say(client, headers, session_id, message):
    return client.post(f'/api/bargain/sessions/{session_id}/chat', json={'message': message}, headers=headers)


def test_session_starts_at_top_rung(client, make_user):
    _, headers = make_user('alice@example.com')
    session = start(client, headers)
    assert session['currentPrice'] == 5.99
    assert session['remainingTurns'] == 10
    assert session['transcript'] == []


def test_chat_moves_one_rung_and_records_transcript(client, make_user, fake_llm):
    _, headers = make_user('alice@example.com')
    fake = fake_llm('行吧，直接降到0.99元！', '不行，不能再便宜了')
    session_id = start(client, headers)['id']

    resp = say(client, headers, session_id, '求求你便宜点')
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['shouldReduce'] is True
    assert data['previousPrice'] == 5.99
    assert data['currentPrice'] == 3.99
    assert data['remainingTurns'] == 9

    resp = say(client, headers, session_id, '再便宜点')
    data = resp.get_json()['data']
    assert data['shouldReduce'] is False
    assert data['currentPrice'] == 3.99
    assert data['remainingTurns'] == 8

    # system prompt, previous exchange, new message
    second_call = fake.calls[1]
    assert second_call[0]['role'] == 'system'
    assert '3.99元' in second_call[0]['content']
    assert [m['content'] for m in second_call[1:]] == ['求求你便宜点', '行吧，直接降到0.99元！', '再便宜点']

    session = client.get(f'/api/bargain/sessions/{session_id}', headers=headers).get_json()['data']
    assert len(session['transcript']) == 4
    assert session['currentPrice'] == 3.99


def test_service_failure_consumes_no_turn(client, make_user, fake_llm):
    _, headers = make_user('alice@example.com')
    fake_llm(LLMServiceError('down'))
    session_id = start(client, headers)['id']

    resp = say(client, headers, session_id, '便宜点')
    assert resp.status_code == 503
    assert resp.get_json()['code'] == 'SERVICE_UNAVAILABLE'

    session = client.get(f'/api/bargain/sessions/{session_id}', headers=headers).get_json()['data']
    assert session['remainingTurns'] == 10
    assert session['transcript'] == []


def test_turns_run_out(app, client, make_user, fake_llm):
    app.config['BARGAIN_MAX_TURNS'] = 2
    _, headers = make_user('alice@example.com')
    fake_llm('不行', '不行')
    session_id = start(client, headers)['id']

    assert say(client, headers, session_id, '1').status_code == 200
    assert say(client, headers, session_id, '2').status_code == 200

    resp = say(client, headers, session_id, '3')
    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'BARGAIN_FINISHED'


def test_sessions_are_private(client, make_user, fake_llm):
    _, alice_headers = make_user('alice@example.com')
    _, bob_headers = make_user('bob@example.com')
    session_id = start(client, alice_headers)['id']

    assert client.get(f'/api/bargain/sessions/{session_id}', headers=bob_headers).status_code == 404
    assert say(client, bob_headers, session_id, 'hi').status_code == 404


def test_empty_message_rejected(client, make_user):
    _, headers = make_user('alice@example.com')
    session_id = start(client, headers)['id']
    resp = say(client, headers, session_id, '   ')
    assert resp.status_code == 400


class BarrierChatClient:
    """两个请求都读到会话后才返回回复"""

    def __init__(self, parties):
        self.barrier = threading.Barrier(parties)

    def chat(self, messages, temperature=0.7, model=None):
        self.barrier.wait(timeout=10)
        return '不行'


def test_concurrent_turns_claim_the_last_turn_once(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'bargain.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        init_db()
    headers = auth_headers(register(app.test_client(), 'alice@example.com')['token'])
    session_id = start(app.test_client(), headers)['id']
    with app.app_context():
        db.session.get(BargainSession, session_id).remaining_turns = 1
        db.session.commit()
        db.session.remove()

    app.extensions['llm_client'] = BarrierChatClient(2)
    codes = []

    def worker(message):
        resp = say(app.test_client(), headers, session_id, message)
        codes.append(resp.status_code)

    threads = [threading.Thread(target=worker, args=(m,)) for m in ('便宜点', '再便宜点')]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(codes) == [200, 409]
    with app.app_context():
        session = db.session.get(BargainSession, session_id)
        assert session.remaining_turns == 0
        assert len(session.transcript) == 2
        db.session.remove()
        db.drop_all()
