"""Command line entry point: run one backup and exit with its status."""

import sys
import logging
import argparse

from custom_backup import __version__, create_coordinator
from custom_backup.config import ConfigError, config
from custom_backup.utils.identity import IdentityError


EXIT_PRE_RUN_FAILURE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='custom-backup',
        description='Archive local paths, ship them to remote hosts over SSH '
                    'and report the result to the node_exporter textfile collector.'
    )
    parser.add_argument(
        '-c', '--config',
        dest='config_file',
        help='JSON file overriding the environment/class configuration'
    )
    parser.add_argument(
        '-e', '--env',
        dest='config_name',
        choices=sorted(config.keys()),
        help='Configuration profile (default: $BACKUP_ENV or production)'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        coordinator = create_coordinator(args.config_name, args.config_file)
    except ConfigError as e:
        print(f"custom-backup: configuration error: {e}", file=sys.stderr)
        return EXIT_PRE_RUN_FAILURE
    except IdentityError as e:
        logging.getLogger(__name__).critical(f"Cannot determine host identity, aborting: {e}")
        return EXIT_PRE_RUN_FAILURE

    coordinator.execute()
    return coordinator.exit_code


if __name__ == '__main__':
    sys.exit(main())
