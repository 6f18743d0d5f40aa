import os
from datetime import timedelta


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


class Config:
    # Flask配置
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your-secret-key'
    JSON_AS_ASCII = False
    PORT = _env_int('PORT', 5000)

    # 数据库配置 - 默认使用SQLite，生产环境通过 DATABASE_URL 指定 MySQL
    basedir = os.path.abspath(os.path.dirname(__file__))
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'social_platform.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 日志配置
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')
    LOG_FILE = 'social_platform.log'

    # Token配置
    JWT_SECRET = os.environ.get('JWT_SECRET') or 'your-jwt-secret'
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRES = timedelta(days=7)

    # 登录保护
    LOGIN_NOT_FOUND_THRESHOLD = _env_int('LOGIN_NOT_FOUND_THRESHOLD', 5)  # 账号不存在
    LOGIN_WRONG_PASSWORD_THRESHOLD = _env_int('LOGIN_WRONG_PASSWORD_THRESHOLD', 3)  # 密码错误
    LOGIN_FREEZE_BASE_MINUTES = _env_int('LOGIN_FREEZE_BASE_MINUTES', 10)

    # 密码策略
    BCRYPT_ROUNDS = _env_int('BCRYPT_ROUNDS', 10)
    PASSWORD_MIN_LENGTH = 8
    NEW_PASSWORD_MIN_LENGTH = 6

    # 管理接口，为空时不校验
    ADMIN_TOKEN = os.environ.get('ADMIN_TOKEN', '')

    # 会员卡密
    CARD_KEY_DEFAULT_DAYS = 30

    # 智谱AI
    LLM_API_BASE = os.environ.get('LLM_API_BASE', 'https://open.bigmodel.cn/api/paas/v4')
    LLM_API_KEY = os.environ.get('LLM_API_KEY', '')
    LLM_MODEL = os.environ.get('LLM_MODEL', 'glm-4-flash')
    LLM_TEMPERATURE = 0.7
    LLM_TIMEOUT = _env_int('LLM_TIMEOUT', 30)

    # 砍价
    BARGAIN_MAX_TURNS = _env_int('BARGAIN_MAX_TURNS', 10)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    LOG_DIR = None
    JWT_SECRET = 'test-jwt-secret'
    BCRYPT_ROUNDS = 4
    LLM_API_KEY = 'test-key'
    ADMIN_TOKEN = ''
