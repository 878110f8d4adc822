"""
Backup module for custom-backup.

This module handles the core backup functionality including:
- Destination parsing
- Source staging
- Compression
- SSH transport
- Retention policy enforcement
- Run orchestration
"""

from .executor import RunCoordinator
from .destinations import DestinationDescriptor, parse_destination, parse_destinations
from .sources import StagingArea, LocalSource
from .compression import create_archive
from .transport import SSHTransport
from .retention import RetentionManager

__all__ = [
    'RunCoordinator',
    'DestinationDescriptor',
    'parse_destination',
    'parse_destinations',
    'StagingArea',
    'LocalSource',
    'create_archive',
    'SSHTransport',
    'RetentionManager'
]
