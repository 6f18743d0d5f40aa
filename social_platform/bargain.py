"""
砍价价格阶梯

价格只能沿固定阶梯逐级下降。decide 根据模型回复判断本轮是否降价：
每次最多降一级，且不会低于底价。
"""
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

PRICE_LADDER = (5.99, 3.99, 1.99, 0.99)

CONCESSION_KEYWORDS = (
    '降到',
    '降至',
    '优惠到',
    '给你',
    '那就',
    '破例',
    '最后',
    '特别优惠',
    '好吧',
    '成交',
)

PRICE_PATTERN = re.compile(r'(\d+\.?\d*)\s*元')
PRICE_TOLERANCE = 0.01


@dataclass(frozen=True)
class PriceDecision:
    should_reduce: bool
    new_price: float


def rung_index(price, ladder=PRICE_LADDER):
    """误差范围内匹配的阶梯下标，没有则返回None"""
    for index, rung in enumerate(ladder):
        if abs(rung - price) < PRICE_TOLERANCE:
            return index
    return None


def next_rung(price, ladder=PRICE_LADDER):
    index = rung_index(price, ladder)
    if index is None or index >= len(ladder) - 1:
        return None
    return ladder[index + 1]


def decide(ai_response, current_price, ladder=PRICE_LADDER, keywords=CONCESSION_KEYWORDS):
    """根据模型回复决定是否降价，纯函数"""
    current_index = rung_index(current_price, ladder)
    if current_index is None or current_index >= len(ladder) - 1:
        return PriceDecision(should_reduce=False, new_price=current_price)

    step_down = ladder[current_index + 1]

    for match in PRICE_PATTERN.finditer(ai_response or ''):
        index = rung_index(float(match.group(1)), ladder)
        if index is None or index <= current_index:
            continue
        if index > current_index + 1:
            logger.warning(f'模型回复跨级降价 {current_price} -> {ladder[index]}，限制为 {step_down}')
        return PriceDecision(should_reduce=True, new_price=step_down)

    if any(keyword in (ai_response or '') for keyword in keywords):
        return PriceDecision(should_reduce=True, new_price=step_down)

    return PriceDecision(should_reduce=False, new_price=current_price)


def _format_price(price):
    return f'{price:.2f}元'


def build_system_prompt(current_price, remaining_turns, max_turns=10, ladder=PRICE_LADDER):
    """价格守门员的系统提示词"""
    following = next_rung(current_price, ladder)
    ladder_text = ' → '.join(_format_price(p) for p in ladder)
    floor = _format_price(ladder[-1])
    if following is None:
        next_text = '已是最低价，不能再降'
    else:
        next_text = f'只能降到 {_format_price(following)}'

    return (
        '你是一位友好但有原则的商品价格守门员，目标是让价格尽量保持在高位。\n'
        '\n'
        '当前状态：\n'
        f'- 商品原价：{_format_price(ladder[0])}\n'
        f'- 当前价格：{_format_price(current_price)}\n'
        f'- 剩余对话次数：{remaining_turns}/{max_turns}\n'
        f'- 价格阶梯：{ladder_text}（{floor} 为底价）\n'
        f'- 本轮最多：{next_text}\n'
        '\n'
        '规则：\n'
        '1. 每次最多降一个价格阶梯，绝不能跨级降价。\n'
        f'2. 价格绝不能低于 {floor}。\n'
        '3. 用户礼貌、真诚或给出合理理由时可以考虑让步；威胁或重复请求时坚持立场。\n'
        '4. 前几轮不要轻易降价，最后几轮可以灵活一些。\n'
        '5. 同意降价时在回复中写明新价格（例如“降到X元”）；不同意时给出理由。\n'
        '6. 保持幽默、机智的对话风格。\n'
    )
