from flask import Blueprint, current_app
from sqlalchemy.exc import IntegrityError
from social_platform import db
from social_platform.models import PAYMENT_COUNTER_ID, PaymentCounter
from social_platform.utils import success, error

payment_bp = Blueprint('payment', __name__)

MAX_ATTEMPTS = 2


def increment_payment_count():
    """计数行不存在时插入；并发插入失败的一方回滚后改走 UPDATE"""
    for attempt in range(MAX_ATTEMPTS):
        updated = PaymentCounter.query.filter_by(id=PAYMENT_COUNTER_ID).update(
            {PaymentCounter.count: PaymentCounter.count + 1},
            synchronize_session=False,
        )
        if updated == 0:
            db.session.add(PaymentCounter(id=PAYMENT_COUNTER_ID, count=1))
        try:
            db.session.commit()
            return
        except IntegrityError:
            db.session.rollback()
            if attempt == MAX_ATTEMPTS - 1:
                raise
            current_app.logger.info('支付计数行被并发创建，重试')


@payment_bp.route('/confirm', methods=['POST'])
def confirm_payment():
    """支付确认，计数加一"""
    try:
        increment_payment_count()

        current_app.logger.info('支付计数更新成功')
        return success({
            'updated': True,
            'message': '支付计数已更新',
        }, '支付确认成功')

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'更新支付计数失败: {str(e)}')
        return error('更新支付计数失败', 500, 'SERVER_ERROR')


@payment_bp.route('/count', methods=['GET'])
def get_payment_count():
    try:
        counter = db.session.get(PaymentCounter, PAYMENT_COUNTER_ID)
        return success({'count': counter.count if counter else 0}, '获取支付计数成功')
    except Exception as e:
        current_app.logger.error(f'获取支付计数失败: {str(e)}')
        return error('获取支付计数失败', 500, 'SERVER_ERROR')
