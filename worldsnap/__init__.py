import os
import atexit
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask
from flask_sqlalchemy import SQLAlchemy


# Initialize extensions
db = SQLAlchemy()


def configure_logging(app):
    """Configure application logging"""

    # Create logs directory if it doesn't exist
    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'worldsnap.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=[console_handler, file_handler])

    # Configure Flask app logger
    app.logger.setLevel(log_level)
    app.logger.addHandler(console_handler)
    app.logger.addHandler(file_handler)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None, config_overrides=None, host=None):
    """
    Flask application factory

    Args:
        config_name: Key into worldsnap.config.config, FLASK_ENV by default
        config_overrides: Values applied on top of the config class
        host: FlushCapability adapter; a LocalHost over DATA_DIRS when None

    Raises:
        ConfigurationError: If compression or retention settings are invalid
    """
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from worldsnap.config import config
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    # Configure logging
    configure_logging(app)

    # Resolve backup settings now so a bad level fails before any backup runs
    from worldsnap.backup.host import LocalHost
    from worldsnap.backup.service import BackupService, BackupSettings
    settings = BackupSettings.from_config(app.config)
    app.logger.info(f"Zstd compression level: {settings.levels.zstd_level}")
    app.logger.info(f"Zip compression level: {settings.levels.zip_level}")

    # Ensure required directories exist
    os.makedirs(app.config['DATA_DIR'], exist_ok=True)
    os.makedirs(settings.backups_dir, exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    from worldsnap.routes import backup_routes
    app.register_blueprint(backup_routes.bp)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    # Create the history table on first start
    from worldsnap import models
    with app.app_context():
        db.create_all()

    if host is None:
        host = LocalHost.from_paths(settings.data_dirs)

    service = BackupService(app, host, settings)
    app.extensions['worldsnap'] = service

    from worldsnap.cli import register_commands
    register_commands(app)

    if app.config.get('SCHEDULER_ENABLED', True) and settings.interval_enabled:
        from worldsnap.scheduler import init_scheduler, start_scheduler, stop_scheduler
        app.logger.info("Initializing scheduler in this process...")
        init_scheduler(app, service)
        start_scheduler()

        # Register cleanup function to stop scheduler on app shutdown
        atexit.register(stop_scheduler)
    else:
        app.logger.info("Scheduler disabled, interval backups will not run in this process")

    return app
