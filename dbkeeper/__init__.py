import os
import atexit
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask
from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

CONSOLE_LOG_FORMAT = '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
FILE_LOG_FORMAT = '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'


def configure_logging(app):
    """Log to the console, and to a rotating file when LOG_DIR is set"""

    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_LOG_FORMAT))
    handlers = [console_handler]

    log_dir = app.config.get('LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'dbkeeper.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(log_level)

    # Third-party loggers (apscheduler, sqlalchemy, gunicorn) go through root
    logging.basicConfig(level=log_level, handlers=handlers)

    # app.logger is the "dbkeeper" package logger and handles dbkeeper.* records
    # itself; propagating as well would emit every line twice
    app.logger.setLevel(log_level)
    app.logger.propagate = False
    for handler in list(app.logger.handlers):
        app.logger.removeHandler(handler)
    for handler in handlers:
        app.logger.addHandler(handler)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def _owns_ticker(app) -> bool:
    """
    Decide whether this process runs the backup ticker.

    Exactly one process may own it:
    - development: the Werkzeug reloader child, not the watching parent
    - production: the gunicorn worker flagged by docker/gunicorn_conf.py
    """
    if not app.config.get('SCHEDULER_ENABLED', True):
        app.logger.info("Ticker disabled by configuration")
        return False

    if app.config.get('DEBUG', False):
        return os.environ.get('WERKZEUG_RUN_MAIN') == 'true'

    return os.environ.get('SCHEDULER_WORKER', 'true').lower() == 'true'


def _ensure_directories(app):
    os.makedirs(app.config['BACKUP_DIR'], exist_ok=True)

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    if database_uri.startswith('sqlite:///') and database_uri != 'sqlite:///:memory:':
        database_dir = os.path.dirname(database_uri[len('sqlite:///'):])
        if database_dir:
            os.makedirs(database_dir, exist_ok=True)


def create_app(config_name=None, test_config=None):
    """Flask application factory"""

    app = Flask(__name__)

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from dbkeeper.config import config
    app.config.from_object(config[config_name])
    if test_config:
        app.config.update(test_config)

    configure_logging(app)
    _ensure_directories(app)

    db.init_app(app)

    from dbkeeper.routes import jobs_routes, backups_routes, dashboard_routes
    app.register_blueprint(jobs_routes.bp)
    app.register_blueprint(backups_routes.bp)
    app.register_blueprint(dashboard_routes.bp)

    from dbkeeper.cli import backups_cli
    app.cli.add_command(backups_cli)

    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    from dbkeeper import models  # noqa: F401 (registers tables on db.metadata)
    from dbkeeper.migrations import init_database_schema
    init_database_schema(app)

    from dbkeeper.scheduler import init_scheduler, start_scheduler, stop_scheduler

    if _owns_ticker(app):
        init_scheduler(app)
        start_scheduler()
        atexit.register(stop_scheduler)
        app.logger.info(f"Backup ticker started in PID {os.getpid()}")
    else:
        app.logger.info(f"Backup ticker not started in PID {os.getpid()}")

    return app
