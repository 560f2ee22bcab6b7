import os

from worldsnap.backup.formats import ConfigurationError


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_list(name, default):
    value = os.environ.get(name)
    if not value:
        return default
    return [item for item in value.split(os.pathsep) if item]


class Config:
    """Base configuration"""

    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.environ.get('WORLDSNAP_DATA_DIR') or os.path.join(BASE_DIR, 'data')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')

    # Database (backup history)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f'sqlite:///{os.path.join(DATA_DIR, "worldsnap.db")}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Data store units to back up (one directory per unit)
    DATA_DIRS = _env_list('DATA_DIRS', ['./worlds/world'])

    # Backup
    BACKUPS_DIR = os.environ.get('BACKUPS_DIR') or './backups'
    KEEP_LAST_N_BACKUPS = _env_int('KEEP_LAST_N_BACKUPS', 10)  # 0 keeps all
    BACKUPS_DIR_STORAGE_LIMIT_MB = _env_int('BACKUPS_DIR_STORAGE_LIMIT_MB', 1024)  # 0 disables the limit
    BACKUP_ON_SESSION_JOIN = _env_bool('BACKUP_ON_SESSION_JOIN', False)
    BACKUP_ON_SESSION_LEAVE = _env_bool('BACKUP_ON_SESSION_LEAVE', True)

    # Compression
    DEFAULT_COMPRESS_TYPE = os.environ.get('DEFAULT_COMPRESS_TYPE') or 'zstd'
    COMPRESS_ZSTD_LEVEL = _env_int('COMPRESS_ZSTD_LEVEL', 10)  # 1-22
    COMPRESS_ZIP_LEVEL = _env_int('COMPRESS_ZIP_LEVEL', 6)  # 0-9

    # Interval backups
    INTERVAL_BACKUP_ENABLED = _env_bool('INTERVAL_BACKUP_ENABLED', True)
    INTERVAL_BACKUP_INITIAL_DELAY_MINUTES = _env_int('INTERVAL_BACKUP_INITIAL_DELAY_MINUTES', 1)
    INTERVAL_BACKUP_INTERVAL_MINUTES = _env_int('INTERVAL_BACKUP_INTERVAL_MINUTES', 20)
    INTERVAL_BACKUP_SKIP_IF_NO_SESSIONS = _env_bool('INTERVAL_BACKUP_SKIP_IF_NO_SESSIONS', True)

    # Scheduler
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', True)
    SCHEDULER_TIMEZONE = 'UTC'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = True


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SCHEDULER_ENABLED = False
    INTERVAL_BACKUP_ENABLED = False


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
