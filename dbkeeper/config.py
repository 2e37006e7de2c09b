import os


def _int_env(name, default=None):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return int(value)


class Config:
    """Base configuration"""

    # Database holding the job mapping and the backup log
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////data/dbkeeper.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Database that gets dumped (None = the application database itself)
    DUMP_DATABASE_URI = os.environ.get('DUMP_DATABASE_URI')

    # Storage
    BACKUP_DIR = os.environ.get('BACKUP_DIR') or '/data/db-backups'
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'

    # Scheduler
    SCHEDULER_ENABLED = True
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE')  # None = local time
    TICK_INTERVAL_SECONDS = _int_env('TICK_INTERVAL_SECONDS', 60)
    RETENTION_SWEEP_HOUR = _int_env('RETENTION_SWEEP_HOUR', 2)

    # Retention cap for manual backups (None = keep every manual backup)
    MANUAL_MAX_BACKUPS = _int_env('MANUAL_MAX_BACKUPS')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "dbkeeper.db")}'
    BACKUP_DIR = os.path.join(DATA_DIR, 'db-backups')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    DUMP_DATABASE_URI = None
    LOG_DIR = None
    SCHEDULER_ENABLED = False
    MANUAL_MAX_BACKUPS = None


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}
