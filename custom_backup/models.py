from datetime import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence


class RunState(Enum):
    """Lifecycle of a single backup run"""
    INIT = 'init'
    STAGED = 'staged'
    ARCHIVED = 'archived'
    TRANSFERRING = 'transferring'
    FINALIZING = 'finalizing'
    DONE = 'done'


@dataclass
class RunContext:
    """Mutable state of the current run, owned by the coordinator"""
    host_ip: str
    started_at: datetime
    staging_root: Optional[str] = None
    archive_path: Optional[str] = None
    archive_size: int = 0

    @property
    def run_date(self) -> str:
        return self.started_at.strftime('%Y-%m-%d')

    def __repr__(self):
        return f'<RunContext host={self.host_ip} date={self.run_date} size={self.archive_size}>'


@dataclass(frozen=True)
class TransferOutcome:
    """Result of shipping the archive to one destination"""
    destination: str
    success: bool


@dataclass(frozen=True)
class JobOutcome:
    """Final verdict of a run"""
    success: bool
    duration_seconds: int
    archive_size_bytes: int
    last_success_timestamp: Optional[int] = None

    @classmethod
    def from_run(
        cls,
        context: RunContext,
        transfers: Sequence[TransferOutcome],
        expected_transfers: int,
        archived: bool,
        completed_at: float,
        interrupted: bool = False
    ) -> 'JobOutcome':
        """
        Derive the job outcome from the run context and transfer results.

        The job succeeds only if the archive was built, the run was not
        interrupted, every destination was attempted and every attempt
        succeeded.
        """
        success = (
            archived
            and not interrupted
            and len(transfers) == expected_transfers
            and all(transfer.success for transfer in transfers)
        )
        duration = max(0, int(completed_at - context.started_at.timestamp()))

        return cls(
            success=success,
            duration_seconds=duration,
            archive_size_bytes=context.archive_size,
            last_success_timestamp=int(completed_at) if success else None
        )
