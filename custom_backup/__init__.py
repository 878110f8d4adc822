import os
import logging
from logging.handlers import RotatingFileHandler


__version__ = '1.4.0'


def configure_logging(config):
    """Configure application logging"""

    # Set log level based on environment
    log_level = logging.DEBUG if config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    handlers = [console_handler]

    # File handler (only when a log directory is configured; cron mails stderr otherwise)
    log_dir = config.get('LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'custom_backup.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # paramiko is chatty at INFO (banner, auth steps)
    logging.getLogger('paramiko').setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_coordinator(config_name=None, config_file=None):
    """
    Run coordinator factory.

    Loads configuration, configures logging and resolves the host identity
    before anything touches the filesystem.

    Raises:
        ConfigError: If the configuration is invalid
        IdentityError: If no usable host address can be found
    """
    from custom_backup.config import load_config
    config = load_config(config_name, config_file)

    configure_logging(config)

    from custom_backup.utils.identity import resolve_host_ip
    host_ip = resolve_host_ip(
        ignored_patterns=config['IGNORED_INTERFACES'],
        override=config.get('HOST_IP')
    )
    logging.getLogger(__name__).info(f"Host identity: {host_ip}")

    from custom_backup.backup.executor import RunCoordinator
    return RunCoordinator(config, host_ip)
