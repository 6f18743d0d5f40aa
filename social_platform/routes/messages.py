from flask import Blueprint, current_app, request
from social_platform import db
from social_platform.models import Conversation, ConversationMember, Message, User
from social_platform.utils import token_required, brief_user, iso, success, error

messages_bp = Blueprint('messages', __name__)


def serialize_message(message):
    return {
        'id': message.id,
        'conversationId': message.conversation_id,
        'senderId': message.sender_id,
        'content': message.content,
        'createdAt': iso(message.created_at),
        'sender': brief_user(message.sender),
    }


def find_private_conversation(user_id, other_id):
    """两个用户之间唯一的私聊会话"""
    mine = {m.conversation_id for m in ConversationMember.query.filter_by(user_id=user_id).all()}
    if not mine:
        return None
    candidates = Conversation.query.filter(Conversation.id.in_(mine), Conversation.type == 'private').all()
    for conversation in candidates:
        member_ids = sorted(m.user_id for m in conversation.members)
        if member_ids == sorted([user_id, other_id]):
            return conversation
    return None


def is_member(conversation_id, user_id):
    return ConversationMember.query.filter_by(conversation_id=conversation_id, user_id=user_id).first() is not None


@messages_bp.route('/conversations/private', methods=['POST'])
@token_required
def get_or_create_private_conversation(user_id):
    try:
        data = request.get_json(silent=True) or {}
        friend_account_id = (data.get('friendAccountId') or '').strip()
        if not friend_account_id:
            return error('好友账号ID不能为空', 400, 'MISSING_PARAMETERS')

        friend = User.query.filter_by(account_id=friend_account_id).first()
        if not friend:
            return error('用户不存在', 404, 'USER_NOT_FOUND')
        if friend.id == user_id:
            return error('不能和自己创建会话', 400, 'SELF_CONVERSATION')

        existing = find_private_conversation(user_id, friend.id)
        if existing:
            return success({'conversationId': existing.id, 'type': existing.type}, '获取会话成功')

        conversation = Conversation(type='private')
        db.session.add(conversation)
        db.session.flush()
        db.session.add(ConversationMember(conversation_id=conversation.id, user_id=user_id))
        db.session.add(ConversationMember(conversation_id=conversation.id, user_id=friend.id))
        db.session.commit()

        return success({'conversationId': conversation.id, 'type': conversation.type}, '创建会话成功')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'获取或创建会话失败: {str(e)}')
        return error('获取或创建会话失败', 500, 'SERVER_ERROR')


@messages_bp.route('/send', methods=['POST'])
@token_required
def send_message(user_id):
    try:
        data = request.get_json(silent=True) or {}
        conversation_id = data.get('conversationId')
        content = data.get('content')

        if not conversation_id or not content:
            return error('会话ID和消息内容不能为空', 400, 'MISSING_PARAMETERS')
        if not isinstance(content, str) or not content.strip():
            return error('消息内容不能为空', 400, 'EMPTY_CONTENT')

        if not db.session.get(Conversation, conversation_id):
            return error('会话不存在', 404, 'CONVERSATION_NOT_FOUND')
        if not is_member(conversation_id, user_id):
            return error('您不是该会话的成员', 403, 'NOT_A_MEMBER')

        message = Message(conversation_id=conversation_id, sender_id=user_id, content=content.strip())
        db.session.add(message)
        db.session.commit()

        return success(serialize_message(message), '消息发送成功')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'发送消息失败: {str(e)}')
        return error('发送消息失败', 500, 'SERVER_ERROR')


@messages_bp.route('/conversations/<int:conversation_id>/messages', methods=['GET'])
@token_required
def get_messages(user_id, conversation_id):
    try:
        if not is_member(conversation_id, user_id):
            return error('您不是该会话的成员', 403, 'NOT_A_MEMBER')

        limit = max(1, min(request.args.get('limit', 50, type=int), 200))
        offset = max(0, request.args.get('offset', 0, type=int))

        messages = Message.query.filter_by(conversation_id=conversation_id) \
            .order_by(Message.created_at.asc(), Message.id.asc()) \
            .limit(limit).offset(offset).all()

        return success({
            'messages': [serialize_message(m) for m in messages],
            'total': len(messages),
        }, '获取消息成功')

    except Exception as e:
        current_app.logger.error(f'获取消息失败: {str(e)}')
        return error('获取消息失败', 500, 'SERVER_ERROR')


@messages_bp.route('/conversations', methods=['GET'])
@token_required
def get_user_conversations(user_id):
    """当前用户的会话列表，附最后一条消息和私聊对方"""
    try:
        memberships = ConversationMember.query.filter_by(user_id=user_id).all()
        conversations = []
        for membership in memberships:
            conversation = membership.conversation
            last_message = Message.query.filter_by(conversation_id=conversation.id) \
                .order_by(Message.created_at.desc(), Message.id.desc()).first()

            other_user = None
            if conversation.type == 'private':
                other = next((m for m in conversation.members if m.user_id != user_id), None)
                other_user = brief_user(other.user) if other else None

            conversations.append({
                'id': conversation.id,
                'type': conversation.type,
                'lastMessage': {
                    'id': last_message.id,
                    'content': last_message.content,
                    'createdAt': iso(last_message.created_at),
                    'sender': brief_user(last_message.sender),
                } if last_message else None,
                'otherUser': other_user,
                'createdAt': iso(conversation.created_at),
            })

        return success({'conversations': conversations}, '获取会话列表成功')

    except Exception as e:
        current_app.logger.error(f'获取会话列表失败: {str(e)}')
        return error('获取会话列表失败', 500, 'SERVER_ERROR')
