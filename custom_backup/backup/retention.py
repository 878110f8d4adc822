"""
Retention policy enforcement for remote backups.

Removes this host's archives older than the configured number of days from a
destination. Pruning is cleanup, not delivery: failures are logged and
reported back, never raised.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Any

from .compression import archive_name_pattern
from .transport import SSHTransport


logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Enforces age-based retention on one destination at a time.

    A retention of 0 days disables pruning entirely.
    """

    def __init__(self, retention_days: int):
        """
        Initialize retention manager.

        Args:
            retention_days: Maximum archive age in days (0 = keep everything)
        """
        self.retention_days = retention_days

    @property
    def enabled(self) -> bool:
        return self.retention_days > 0

    def enforce(
        self,
        transport: SSHTransport,
        remote_dir: str,
        host_ip: str,
        keep_filename: str
    ) -> Dict[str, Any]:
        """
        Delete aged archives of host_ip from remote_dir.

        Args:
            transport: Connected transport for the destination
            remote_dir: Remote archive directory
            host_ip: Host whose archives are considered
            keep_filename: Archive uploaded by the current run, never deleted

        Returns:
            Dict with summary: {'deleted': int, 'errors': List[str]}
        """
        summary = {
            'deleted': 0,
            'errors': []
        }

        if not self.enabled:
            logger.info("Retention: disabled, skipping")
            return summary

        host = transport.destination.host
        logger.info(f"Retention on {host}: {self.retention_days} days")

        # Calculate cutoff date
        cutoff_date = datetime.now() - timedelta(days=self.retention_days)

        try:
            files = transport.list_files(remote_dir, archive_name_pattern(host_ip))
            to_delete = [
                f for f in files
                if f['modified'] < cutoff_date and f['name'] != keep_filename
            ]
        except Exception as e:
            error_msg = f"Failed to list remote archives on {host}: {e}"
            logger.warning(error_msg)
            summary['errors'].append(error_msg)
            return summary

        for file_info in to_delete:
            try:
                transport.delete(file_info['path'])
                summary['deleted'] += 1
                logger.info(f"Deleted remote archive: {host}:{file_info['path']}")
            except Exception as e:
                error_msg = f"Failed to delete {host}:{file_info['path']}: {e}"
                logger.warning(error_msg)
                summary['errors'].append(error_msg)

        logger.info(
            f"Retention on {host} complete. "
            f"Deleted: {summary['deleted']}, "
            f"Errors: {len(summary['errors'])}"
        )

        return summary
