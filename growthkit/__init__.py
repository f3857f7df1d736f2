"""
GrowthKit Ledger & Admission Engine
Flask application factory
"""
import os
import logging
from flask import Flask

from .extensions import db, migrate, enable_sqlite_savepoints
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    validate_config(config_name)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        if db.engine.dialect.name == 'sqlite':
            enable_sqlite_savepoints(db.engine)

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Background scheduler for the daily invitation batch
    from .utils.scheduler import init_scheduler
    init_scheduler(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'growthkit'}

    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.identity import identity_bp
    from .api.referrals import referrals_bp
    from .api.waitlist import waitlist_bp
    from .api.profile import profile_bp
    from .api.admin import admin_bp

    # Client API (X-App-Key)
    app.register_blueprint(identity_bp, url_prefix='/api/v1')
    app.register_blueprint(profile_bp, url_prefix='/api/v1')
    app.register_blueprint(referrals_bp, url_prefix='/api/v1/referral')
    app.register_blueprint(waitlist_bp, url_prefix='/api/v1/waitlist')

    # Admin API (service key)
    app.register_blueprint(admin_bp, url_prefix='/api/admin')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import error_response, internal_error, ErrorCode
    from .utils.exceptions import GrowthKitError

    @app.errorhandler(GrowthKitError)
    def growthkit_error(error):
        db.session.rollback()
        return error_response(
            error.message,
            error.code,
            error.status_code,
            log_error=error.status_code >= 500
        )

    @app.errorhandler(400)
    def bad_request(error):
        return error_response(str(error), ErrorCode.INVALID_REQUEST, 400, log_error=False)

    @app.errorhandler(404)
    def not_found(error):
        return error_response('Not found', ErrorCode.NOT_FOUND, 404, log_error=False)

    @app.errorhandler(500)
    def server_error(error):
        db.session.rollback()
        return internal_error('Internal server error')
