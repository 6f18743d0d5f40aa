def register_blueprints(app):
    from social_platform.routes.auth import auth_bp
    from social_platform.routes.user import user_bp
    from social_platform.routes.social import social_bp
    from social_platform.routes.messages import messages_bp
    from social_platform.routes.notifications import notifications_bp
    from social_platform.routes.payment import payment_bp
    from social_platform.routes.admin import admin_bp
    from social_platform.routes.bargain import bargain_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(user_bp, url_prefix='/api/user')
    app.register_blueprint(social_bp, url_prefix='/api/social')
    app.register_blueprint(messages_bp, url_prefix='/api/messages')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
    app.register_blueprint(payment_bp, url_prefix='/api/payment')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(bargain_bp, url_prefix='/api/bargain')
