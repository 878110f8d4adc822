"""
Status document for the node_exporter textfile collector.

The document is rendered from a fresh CollectorRegistry on every run, so its
content depends only on the values passed in.
"""

import os
import logging
from typing import Sequence

from prometheus_client import CollectorRegistry, Gauge, generate_latest, write_to_textfile

from custom_backup.models import JobOutcome, TransferOutcome
from custom_backup.utils.ownership import adjust_ownership


logger = logging.getLogger(__name__)


class ReportError(Exception):
    """Raised when the status document cannot be written."""
    pass


class StatusReporter:
    """
    Renders run outcomes as Prometheus gauges and writes them atomically.
    """

    def __init__(
        self,
        output_dir: str,
        version: str,
        filename: str = 'custom_backup.prom',
        monitoring_process: str = 'node_exporter'
    ):
        """
        Initialize status reporter.

        Args:
            output_dir: textfile collector directory
            version: Script version reported in custom_backup_info
            filename: Document name inside output_dir (must end in .prom)
            monitoring_process: Process whose user should own the document
        """
        self.output_dir = output_dir
        self.version = version
        self.filename = filename
        self.monitoring_process = monitoring_process

    @property
    def path(self) -> str:
        return os.path.join(self.output_dir, self.filename)

    def build_registry(
        self,
        job: JobOutcome,
        transfers: Sequence[TransferOutcome],
        host_ip: str
    ) -> CollectorRegistry:
        """Build a registry holding exactly this run's gauges."""
        registry = CollectorRegistry()

        info = Gauge(
            'custom_backup_info',
            'Information about the custom backup script',
            ['server_ip', 'version'],
            registry=registry,
        )
        info.labels(server_ip=host_ip, version=self.version).set(1)

        job_success = Gauge(
            'custom_backup_job_success',
            'Whether the last backup job succeeded (1) or failed (0)',
            ['server_ip'],
            registry=registry,
        )
        job_success.labels(server_ip=host_ip).set(1 if job.success else 0)

        duration = Gauge(
            'custom_backup_job_duration_seconds',
            'Duration of the last backup job in seconds',
            ['server_ip'],
            registry=registry,
        )
        duration.labels(server_ip=host_ip).set(job.duration_seconds)

        if job.archive_size_bytes > 0:
            size = Gauge(
                'custom_backup_archive_size_bytes',
                'Size of the last backup archive in bytes',
                ['server_ip'],
                registry=registry,
            )
            size.labels(server_ip=host_ip).set(job.archive_size_bytes)

        if job.success and job.last_success_timestamp is not None:
            last_success = Gauge(
                'custom_backup_last_success_timestamp_seconds',
                'Unix timestamp of the last successful backup',
                ['server_ip'],
                registry=registry,
            )
            last_success.labels(server_ip=host_ip).set(job.last_success_timestamp)

        if transfers:
            transfer_success = Gauge(
                'custom_backup_transfer_success',
                'Whether the transfer to a destination succeeded (1) or failed (0)',
                ['server_ip', 'destination'],
                registry=registry,
            )
            for transfer in transfers:
                transfer_success.labels(
                    server_ip=host_ip,
                    destination=transfer.destination
                ).set(1 if transfer.success else 0)

        return registry

    def render(self, job: JobOutcome, transfers: Sequence[TransferOutcome], host_ip: str) -> str:
        """Render the status document as exposition-format text."""
        return generate_latest(self.build_registry(job, transfers, host_ip)).decode('utf-8')

    def write(self, job: JobOutcome, transfers: Sequence[TransferOutcome], host_ip: str) -> str:
        """
        Write the status document and hand it to the monitoring agent.

        write_to_textfile writes a temporary file next to the target and
        renames it into place, so a scrape sees either the old or the new
        document, never a partial one.

        Returns:
            Path of the written document

        Raises:
            ReportError: If the document cannot be written
        """
        registry = self.build_registry(job, transfers, host_ip)

        try:
            os.makedirs(self.output_dir, exist_ok=True)
            write_to_textfile(self.path, registry)
        except OSError as e:
            raise ReportError(f"Failed to write status document {self.path}: {e}")

        logger.info(f"Status document written: {self.path}")

        adjust_ownership(self.path, self.monitoring_process)
        return self.path
