from datetime import datetime
from flask import Blueprint, current_app, request
from social_platform import db
from social_platform.bargain import PRICE_LADDER, build_system_prompt, decide
from social_platform.llm import LLMServiceError
from social_platform.models import BargainSession
from social_platform.utils import token_required, iso, success, error

bargain_bp = Blueprint('bargain', __name__)

MAX_MESSAGE_LENGTH = 500


def serialize_session(session):
    return {
        'id': session.id,
        'originalPrice': PRICE_LADDER[0],
        'floorPrice': PRICE_LADDER[-1],
        'currentPrice': session.current_price,
        'remainingTurns': session.remaining_turns,
        'maxTurns': current_app.config['BARGAIN_MAX_TURNS'],
        'transcript': session.transcript,
        'createdAt': iso(session.created_at),
        'updatedAt': iso(session.updated_at),
    }


def get_own_session(user_id, session_id):
    return BargainSession.query.filter_by(id=session_id, user_id=user_id).first()


@bargain_bp.route('/sessions', methods=['POST'])
@token_required
def start_session(user_id):
    """从原价开始一轮砍价"""
    try:
        session = BargainSession(
            user_id=user_id,
            current_price=PRICE_LADDER[0],
            remaining_turns=current_app.config['BARGAIN_MAX_TURNS'],
            transcript=[],
        )
        db.session.add(session)
        db.session.commit()
        return success(serialize_session(session), '砍价开始', 201)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'创建砍价会话失败: {str(e)}')
        return error('创建砍价会话失败', 500, 'SERVER_ERROR')


@bargain_bp.route('/sessions/<int:session_id>', methods=['GET'])
@token_required
def get_session(user_id, session_id):
    try:
        session = get_own_session(user_id, session_id)
        if not session:
            return error('砍价会话不存在', 404, 'SESSION_NOT_FOUND')
        return success(serialize_session(session))
    except Exception as e:
        current_app.logger.error(f'获取砍价会话失败: {str(e)}')
        return error('获取砍价会话失败', 500, 'SERVER_ERROR')


@bargain_bp.route('/sessions/<int:session_id>/chat', methods=['POST'])
@token_required
def chat(user_id, session_id):
    """
    发送一轮砍价消息。

    模型回复后用价格阶梯规则判断是否降价，每轮最多降一级；
    模型调用失败时不消耗次数。
    """
    data = request.get_json(silent=True) or {}
    content = data.get('message')
    if not isinstance(content, str) or not content.strip():
        return error('消息内容不能为空', 400, 'EMPTY_CONTENT')
    content = content.strip()[:MAX_MESSAGE_LENGTH]

    try:
        session = get_own_session(user_id, session_id)
        if not session:
            return error('砍价会话不存在', 404, 'SESSION_NOT_FOUND')
        if session.remaining_turns <= 0:
            return error('砍价次数已用完', 400, 'BARGAIN_FINISHED')

        max_turns = current_app.config['BARGAIN_MAX_TURNS']
        transcript = list(session.transcript or [])
        messages = [{'role': 'system',
                     'content': build_system_prompt(session.current_price, session.remaining_turns, max_turns)}]
        messages.extend(transcript)
        messages.append({'role': 'user', 'content': content})

        client = current_app.extensions['llm_client']
        try:
            reply = client.chat(messages, temperature=current_app.config['LLM_TEMPERATURE'])
        except LLMServiceError as e:
            current_app.logger.warning(f'[砍价] 会话 {session_id} 模型调用失败: {e}')
            return error('砍价服务暂时不可用，请稍后重试', 503, 'SERVICE_UNAVAILABLE')

        previous_price = session.current_price
        seen_turns = session.remaining_turns
        decision = decide(reply, previous_price)

        transcript.append({'role': 'user', 'content': content})
        transcript.append({'role': 'assistant', 'content': reply})
        # 以读到的剩余次数为版本号占用本轮，并发请求只有一个能写入
        claimed = BargainSession.query.filter_by(id=session.id, remaining_turns=seen_turns).update({
            BargainSession.transcript: transcript,
            BargainSession.current_price: decision.new_price,
            BargainSession.remaining_turns: seen_turns - 1,
            BargainSession.updated_at: datetime.utcnow(),
        }, synchronize_session=False)
        if claimed != 1:
            db.session.rollback()
            current_app.logger.warning(f'[砍价] 会话 {session_id} 本轮已被其他请求处理')
            return error('本轮砍价已被其他请求处理，请刷新后重试', 409, 'BARGAIN_CONFLICT')
        db.session.commit()

        if decision.should_reduce:
            current_app.logger.info(f'[砍价] 会话 {session_id}: {previous_price} -> {decision.new_price}')

        return success({
            'reply': reply,
            'shouldReduce': decision.should_reduce,
            'previousPrice': previous_price,
            'currentPrice': decision.new_price,
            'remainingTurns': seen_turns - 1,
        })

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'砍价对话失败: {str(e)}')
        return error('砍价对话失败', 500, 'SERVER_ERROR')
