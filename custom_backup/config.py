import os
import json
import tempfile

from custom_backup import __version__


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""
    pass


def _env_list(name, default=None):
    """Read a comma separated list from the environment."""
    value = os.environ.get(name)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(',') if item.strip()]


DEFAULT_IGNORED_INTERFACES = [
    'lo', 'docker*', 'br-*', 'veth*', 'virbr*', 'vnet*', 'vmnet*', 'vboxnet*',
    'cni*', 'flannel*', 'cali*', 'tun*', 'tap*', 'kube*', 'lxc*', 'lxdbr*', 'weave*'
]


class Config:
    """Base configuration"""

    DEBUG = False

    # What to back up
    SOURCE_PATHS = _env_list('BACKUP_SOURCES')
    EXCLUDE_PATTERNS = _env_list('BACKUP_EXCLUDES')

    # Where to send it: user@host:port:/base/path
    DESTINATIONS = _env_list('BACKUP_DESTINATIONS')
    SSH_KEY_PATH = os.environ.get('BACKUP_SSH_KEY') or None
    SSH_TIMEOUT = os.environ.get('BACKUP_SSH_TIMEOUT', 30)

    # Remote retention (0 disables pruning)
    RETENTION_DAYS = os.environ.get('BACKUP_RETENTION_DAYS', 7)

    # node_exporter textfile collector
    METRICS_DIR = os.environ.get('BACKUP_METRICS_DIR') or '/var/lib/node_exporter/textfile_collector'
    METRICS_FILENAME = os.environ.get('BACKUP_METRICS_FILENAME') or 'custom_backup.prom'
    MONITORING_AGENT_PROCESS = os.environ.get('BACKUP_MONITORING_AGENT') or 'node_exporter'
    SCRIPT_VERSION = os.environ.get('BACKUP_SCRIPT_VERSION') or __version__

    # Staging
    TEMP_DIR = os.environ.get('TEMP_DIR') or tempfile.gettempdir()

    # Logging
    LOG_DIR = os.environ.get('BACKUP_LOG_DIR') or None

    # Identity
    HOST_IP = os.environ.get('BACKUP_HOST_IP') or None
    IGNORED_INTERFACES = _env_list('BACKUP_IGNORED_INTERFACES', DEFAULT_IGNORED_INTERFACES)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    METRICS_DIR = os.path.join(DATA_DIR, 'metrics')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = True
    SOURCE_PATHS = []
    EXCLUDE_PATTERNS = []
    DESTINATIONS = []
    SSH_KEY_PATH = None
    RETENTION_DAYS = 0
    LOG_DIR = None
    HOST_IP = None


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}

LIST_KEYS = ('SOURCE_PATHS', 'EXCLUDE_PATTERNS', 'DESTINATIONS', 'IGNORED_INTERFACES')


def load_config(config_name=None, config_file=None) -> dict:
    """
    Build the effective configuration.

    Args:
        config_name: Key into ``config`` (defaults to BACKUP_ENV or 'production')
        config_file: Optional JSON file whose keys override the class values

    Returns:
        Dict of upper-case settings

    Raises:
        ConfigError: If the name, the file or any value is invalid
    """
    if config_name is None:
        config_name = os.environ.get('BACKUP_ENV', 'default')

    if config_name not in config:
        raise ConfigError(
            f"Unknown configuration: {config_name}. "
            f"Valid options: {list(config.keys())}"
        )

    config_class = config[config_name]
    settings = {
        key: getattr(config_class, key)
        for key in dir(config_class)
        if key.isupper()
    }

    if config_file:
        settings.update(_read_config_file(config_file))

    return validate_config(settings)


def _read_config_file(path: str) -> dict:
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a JSON object: {path}")

    return {key.upper(): value for key, value in data.items()}


def validate_config(settings: dict) -> dict:
    """
    Coerce and validate settings in place.

    Raises:
        ConfigError: On the first invalid value
    """
    for key in LIST_KEYS:
        value = settings.get(key) or []
        if isinstance(value, str):
            value = [item.strip() for item in value.split(',') if item.strip()]
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ConfigError(f"{key} must be a list of strings")
        settings[key] = list(value)

    try:
        settings['RETENTION_DAYS'] = int(settings.get('RETENTION_DAYS', 0))
    except (TypeError, ValueError):
        raise ConfigError(f"RETENTION_DAYS must be an integer: {settings.get('RETENTION_DAYS')!r}")
    if settings['RETENTION_DAYS'] < 0:
        raise ConfigError("RETENTION_DAYS must not be negative")

    try:
        settings['SSH_TIMEOUT'] = int(settings.get('SSH_TIMEOUT', 30))
    except (TypeError, ValueError):
        raise ConfigError(f"SSH_TIMEOUT must be an integer: {settings.get('SSH_TIMEOUT')!r}")
    if settings['SSH_TIMEOUT'] <= 0:
        raise ConfigError("SSH_TIMEOUT must be positive")

    if not settings.get('METRICS_DIR'):
        raise ConfigError("METRICS_DIR is required")

    settings['SCRIPT_VERSION'] = str(settings.get('SCRIPT_VERSION') or __version__)
    settings['SSH_KEY_PATH'] = settings.get('SSH_KEY_PATH') or None
    settings['HOST_IP'] = settings.get('HOST_IP') or None

    return settings
