"""
Run coordinator - orchestrates one complete backup run.

Workflow:
1. Parse destinations and check credentials (INIT)
2. Stage source items into a private directory (STAGED)
3. Create the compressed archive (ARCHIVED)
4. Ship the archive to each destination in order, pruning old copies (TRANSFERRING)
5. Compute the job outcome and write the status document (FINALIZING)
6. Remove the staging directory (DONE)

Steps 5 and 6 happen on every exit path: success, fatal error and
interruption alike.
"""

import os
import time
import signal
import logging
import threading
from datetime import datetime
from typing import Optional, List

from custom_backup.config import ConfigError
from custom_backup.models import RunState, RunContext, TransferOutcome, JobOutcome
from custom_backup.reporter import StatusReporter, ReportError
from .destinations import DestinationDescriptor, parse_destinations, DestinationError
from .sources import StagingArea, LocalSource, SourceError
from .compression import create_archive, generate_archive_filename, get_archive_size, CompressionError
from .transport import SSHTransport, TransportError
from .retention import RetentionManager


logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)

# Allowed predecessors of each state; FINALIZING is also the abort target
TRANSITIONS = {
    RunState.STAGED: {RunState.INIT},
    RunState.ARCHIVED: {RunState.STAGED},
    RunState.TRANSFERRING: {RunState.ARCHIVED},
    RunState.FINALIZING: {RunState.INIT, RunState.STAGED, RunState.ARCHIVED, RunState.TRANSFERRING},
    RunState.DONE: {RunState.FINALIZING},
}


class RunStateError(Exception):
    """Raised on an illegal run state transition."""
    pass


class RunInterrupted(BaseException):
    """
    Raised from a signal handler when the run is asked to stop.

    Derives from BaseException, like KeyboardInterrupt, so per-destination
    error handling cannot swallow it.
    """

    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Interrupted by signal {signal.Signals(signum).name}")


class RunCoordinator:
    """
    Sequences staging, archiving, transfer and reporting for one run.
    """

    def __init__(self, config: dict, host_ip: str, reporter: Optional[StatusReporter] = None):
        """
        Initialize run coordinator.

        Args:
            config: Settings from load_config()
            host_ip: Resolved host identity
            reporter: Status reporter (built from config when None)
        """
        self.config = config
        self.host_ip = host_ip
        self.reporter = reporter or StatusReporter(
            output_dir=config['METRICS_DIR'],
            version=config['SCRIPT_VERSION'],
            filename=config['METRICS_FILENAME'],
            monitoring_process=config['MONITORING_AGENT_PROCESS']
        )

        self.state = RunState.INIT
        self.context = None
        self.destinations: List[DestinationDescriptor] = []
        self.transfers: List[TransferOutcome] = []
        self.job_outcome = None
        self.error_message = None
        self.archived = False
        self.interrupted = False
        self.report_written = False
        self._signals_deferred = False

    def execute(self) -> JobOutcome:
        """
        Execute the backup run.

        Never raises for run failures; they are reflected in the returned
        JobOutcome, the status document and ``exit_code``.

        Returns:
            JobOutcome of this run
        """
        if self.state is not RunState.INIT:
            raise RunStateError(f"Run already executed (state: {self.state.name})")

        self.context = RunContext(host_ip=self.host_ip, started_at=datetime.now())
        logger.info(f"Starting backup run on {self.host_ip}")

        previous_handlers = self._install_signal_handlers()

        try:
            try:
                self._execute_workflow()
            finally:
                self._defer_signals()
            logger.info("Backup workflow completed")

        except (ConfigError, DestinationError) as e:
            self.error_message = str(e)
            logger.error(f"Invalid configuration: {e}")
        except (SourceError, CompressionError) as e:
            self.error_message = str(e)
            logger.error(f"Archive creation failed: {e}")
        except (RunInterrupted, KeyboardInterrupt) as e:
            self.interrupted = True
            self.error_message = str(e) or 'Interrupted'
            logger.error(f"Backup run interrupted in state {self.state.name}: {self.error_message}")
        except Exception as e:
            self.error_message = str(e)
            logger.exception(f"Backup run failed: {e}")

        finally:
            try:
                self._finalize()
            finally:
                self._restore_signal_handlers(previous_handlers)

        return self.job_outcome

    @property
    def exit_code(self) -> int:
        """Process exit status for this run."""
        if self.interrupted:
            return EXIT_INTERRUPTED
        if self.job_outcome is not None and self.job_outcome.success and self.report_written:
            return EXIT_SUCCESS
        return EXIT_FAILURE

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        # Step 1: Validate everything that must hold before touching the network
        self.destinations = parse_destinations(self.config['DESTINATIONS'])
        logger.info(f"Destinations: {', '.join(d.label for d in self.destinations)}")
        self._check_credentials()

        # Steps 2-4 run inside the staging guard, which removes the directory on exit
        with StagingArea(self.config.get('TEMP_DIR')) as staging:
            try:
                self._stage_and_ship(staging)
            finally:
                # Cleanup must not be cut short by a signal
                self._defer_signals()

    def _stage_and_ship(self, staging: StagingArea):
        """Stage, archive and transfer inside an open staging area."""
        self.context.staging_root = staging.path

        # Step 2: Stage sources
        staged_root = os.path.join(staging.path, self.context.run_date)
        os.makedirs(staged_root)
        source = LocalSource(self.config['SOURCE_PATHS'])
        acquired = source.acquire(staged_root)
        logger.info(
            f"Staged {len(acquired)} item(s), "
            f"{len(source.missing_paths)} missing"
        )
        self._transition(RunState.STAGED)

        # Step 3: Create archive
        archive_path = os.path.join(
            staging.path,
            generate_archive_filename(self.host_ip, self.context.run_date)
        )
        logger.info(f"Creating archive {os.path.basename(archive_path)}")
        self.context.archive_path = create_archive(
            staged_root,
            archive_path,
            self.context.run_date,
            self.config['EXCLUDE_PATTERNS']
        )
        self.context.archive_size = get_archive_size(self.context.archive_path)
        logger.info(f"Archive created ({self.context.archive_size / 1024 / 1024:.2f} MB)")
        self._transition(RunState.ARCHIVED)

        # Step 4: Ship to every destination, one at a time
        self._transition(RunState.TRANSFERRING)
        for destination in self.destinations:
            self.transfers.append(self._transfer(destination))

        failed = [t.destination for t in self.transfers if not t.success]
        if failed:
            logger.error(f"Transfer failed for {len(failed)} of {len(self.transfers)} destination(s): {', '.join(failed)}")

    def _check_credentials(self):
        """
        Raises:
            ConfigError: If a key file is configured but missing
        """
        key_path = self.config.get('SSH_KEY_PATH')
        if key_path and not os.path.isfile(os.path.expanduser(key_path)):
            raise ConfigError(f"SSH key file not found: {key_path}")

    def _transfer(self, destination: DestinationDescriptor) -> TransferOutcome:
        """
        Ship the archive to one destination and enforce retention there.

        Returns:
            TransferOutcome; failures never propagate
        """
        remote_dir = destination.remote_directory(self.host_ip)
        logger.info(f"Transferring to {destination.label}")

        transport = SSHTransport(
            destination,
            key_filename=self.config.get('SSH_KEY_PATH'),
            timeout=self.config['SSH_TIMEOUT']
        )

        try:
            transport.connect()
            transport.ensure_directory(remote_dir)
            transport.upload(self.context.archive_path, remote_dir)

            # Pruning is best effort and cannot fail the transfer
            retention = RetentionManager(self.config['RETENTION_DAYS'])
            retention.enforce(
                transport,
                remote_dir,
                self.host_ip,
                keep_filename=os.path.basename(self.context.archive_path)
            )

            logger.info(f"Transfer to {destination.label} succeeded")
            return TransferOutcome(destination=destination.label, success=True)

        except TransportError as e:
            logger.error(f"Transfer to {destination.label} failed: {e}")
            return TransferOutcome(destination=destination.label, success=False)
        except Exception as e:
            logger.exception(f"Unexpected error transferring to {destination.label}: {e}")
            return TransferOutcome(destination=destination.label, success=False)

        finally:
            transport.close()

    def _finalize(self):
        """Compute the job outcome and write the status document."""
        if self.state is RunState.DONE:
            return

        self._transition(RunState.FINALIZING)

        self.job_outcome = JobOutcome.from_run(
            self.context,
            self.transfers,
            expected_transfers=len(self.destinations),
            archived=self.archived,
            completed_at=time.time(),
            interrupted=self.interrupted
        )

        try:
            self.reporter.write(self.job_outcome, self.transfers, self.host_ip)
            self.report_written = True
        except ReportError as e:
            logger.error(f"{e}")
        except Exception as e:
            logger.exception(f"Failed to write status document: {e}")

        status = 'succeeded' if self.job_outcome.success else 'failed'
        logger.info(
            f"Backup run {status} in {self.job_outcome.duration_seconds}s "
            f"({sum(t.success for t in self.transfers)}/{len(self.destinations)} destination(s) ok)"
        )

        self._transition(RunState.DONE)

    def _archive_ready(self) -> bool:
        return self.context.archive_path is not None and self.context.archive_size >= 0

    def _transition(self, new_state: RunState):
        """
        Move to new_state.

        Raises:
            RunStateError: If new_state may not follow the current state
        """
        if self.state not in TRANSITIONS[new_state]:
            raise RunStateError(f"Illegal transition {self.state.name} -> {new_state.name}")

        if new_state is RunState.ARCHIVED and not self._archive_ready():
            raise RunStateError("Cannot enter ARCHIVED without an archive")

        logger.debug(f"Run state {self.state.name} -> {new_state.name}")
        self.state = new_state
        if new_state is RunState.ARCHIVED:
            self.archived = True

    def _install_signal_handlers(self) -> dict:
        """
        Turn SIGINT/SIGTERM/SIGHUP into RunInterrupted while the run is active.

        Only the first signal raises. Later signals, and any signal once the
        run has started cleaning up, merely mark the run as interrupted.
        """
        if threading.current_thread() is not threading.main_thread():
            return {}

        def handler(signum, frame):
            self.interrupted = True
            if self._signals_deferred:
                logger.warning(f"Received {signal.Signals(signum).name} while finalizing, finishing first")
                return
            self._signals_deferred = True
            raise RunInterrupted(signum)

        previous = {}
        for signum in HANDLED_SIGNALS:
            previous[signum] = signal.signal(signum, handler)
        return previous

    def _defer_signals(self):
        self._signals_deferred = True

    def _restore_signal_handlers(self, previous: dict):
        for signum, old_handler in previous.items():
            signal.signal(signum, old_handler)
