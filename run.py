#!/usr/bin/env python3
"""Development runner"""
import sys
from custom_backup.cli import main

if __name__ == '__main__':
    # Use development config for local testing unless a profile is given
    argv = sys.argv[1:]
    if not any(arg in ('-e', '--env') or arg.startswith('--env=') for arg in argv):
        argv = ['--env', 'development'] + argv

    sys.exit(main(argv))
