"""
Firearms Licensing Workflow
Blueprint registry.
"""


def register_blueprints(app):
    """Register every API blueprint on ``app``."""
    from licensing.blueprints.application_bp import application_bp
    from licensing.blueprints.health_bp import health_bp
    from licensing.blueprints.notification_bp import notification_bp

    app.register_blueprint(application_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)
