from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
import logging
from logging.handlers import RotatingFileHandler
import os
from social_platform.config import Config

# 初始化数据库
db = SQLAlchemy()


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.json.ensure_ascii = app.config['JSON_AS_ASCII']

    # 初始化扩展
    db.init_app(app)

    # 配置日志
    log_dir = app.config.get('LOG_DIR')
    if log_dir:
        if not os.path.exists(log_dir):
            os.mkdir(log_dir)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, app.config['LOG_FILE']), maxBytes=10240, backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
    app.logger.info('Social platform startup')

    # 智谱AI客户端
    from social_platform.llm import ChatClient
    app.extensions['llm_client'] = ChatClient(
        api_base=app.config['LLM_API_BASE'],
        api_key=app.config['LLM_API_KEY'],
        model=app.config['LLM_MODEL'],
        timeout=app.config['LLM_TIMEOUT'],
    )

    # 注册蓝图
    from social_platform.routes import register_blueprints
    register_blueprints(app)

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok', 'message': '社交平台后端运行中'})

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'status': 'error', 'message': '接口不存在', 'code': 'NOT_FOUND'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'status': 'error', 'message': '请求方法不允许', 'code': 'METHOD_NOT_ALLOWED'}), 405

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        app.logger.error(f'服务器错误: {str(e)}')
        return jsonify({'status': 'error', 'message': '服务器内部错误', 'code': 'SERVER_ERROR'}), 500

    return app


def init_db():
    """创建数据表并写入默认标签和支付计数"""
    from social_platform.models import seed_default_tags, seed_payment_counter
    db.create_all()
    seed_default_tags()
    seed_payment_counter()
