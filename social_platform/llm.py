import logging

import requests

logger = logging.getLogger(__name__)


class LLMServiceError(Exception):
    """文本生成服务不可用或返回异常"""


class ChatClient:
    """智谱AI chat completions 接口"""

    def __init__(self, api_base, api_key, model='glm-4-flash', timeout=30):
        self.api_base = api_base.rstrip('/')
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = requests.Session()

    def chat(self, messages, temperature=0.7, model=None):
        url = f'{self.api_base}/chat/completions'
        payload = {
            'model': model or self.model,
            'messages': messages,
            'temperature': temperature,
            'top_p': 0.7,
            'max_tokens': 2000,
        }
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.api_key}',
        }

        try:
            r = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f'智谱AI调用失败: {e}')
            raise LLMServiceError('智谱AI服务暂时不可用，请稍后重试') from e

        if r.status_code != 200:
            logger.error(f'智谱AI返回错误: {r.status_code} - {r.text[:200]}')
            raise LLMServiceError('智谱AI服务暂时不可用，请稍后重试')

        try:
            data = r.json()
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f'智谱AI返回数据格式错误: {e}')
            raise LLMServiceError('智谱AI返回数据格式错误') from e

        if content is None:
            return ''
        if not isinstance(content, str):
            logger.error(f'智谱AI返回内容类型错误: {type(content).__name__}')
            raise LLMServiceError('智谱AI返回数据格式错误')
        return content
