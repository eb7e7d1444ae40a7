"""Business logic for the retention sweeper.

Three independent passes run per cycle:

- stale pending: ``Pending`` records created before the pending expiry
- stale failed: ``Failed`` records last updated before the failed expiry
- expired trash: soft-deleted records last updated before the
  deleted expiry

A matched record is removed from the object store and then from the
database. Failures are logged per record and never stop the rest of
the cycle; the record keeps its row and is retried next cycle.
"""

import dataclasses
import enum
import logging
import threading
from datetime import datetime, timedelta
from typing import Final, final

from django.conf import settings
from django.db import close_old_connections, connection
from django.db.models import QuerySet
from django.utils import timezone

from vault.apps.files.cancellation import NEVER_CANCELLED, CancellationToken
from vault.apps.files.exceptions import OperationCancelledError
from vault.apps.files.logic.file_operations import purge_file_record
from vault.apps.files.models import FileRecord, FileStatus

logger = logging.getLogger(__name__)

_THREAD_NAME: Final = 'file-retention-sweeper'


class SweepCategory(enum.Enum):
    """Sweep pass, valued by the reason written to the log."""

    STALE_PENDING = 'Pending cleanup'
    STALE_FAILED = 'Failed cleanup'
    EXPIRED_DELETED = 'Deleted purge'


@final
@dataclasses.dataclass(frozen=True)
class RetentionPolicy:
    """Sweep interval, expiry windows and dry-run switch."""

    interval: timedelta = timedelta(minutes=10)
    pending_expiry: timedelta = timedelta(minutes=30)
    failed_expiry: timedelta = timedelta(days=1)
    deleted_expiry: timedelta = timedelta(days=30)
    dry_run: bool = False

    @classmethod
    def from_settings(cls) -> 'RetentionPolicy':
        """Build the policy from ``FILE_CLEANUP_*`` settings.

        Returns:
            RetentionPolicy instance.
        """
        return cls(
            interval=timedelta(
                minutes=getattr(settings, 'FILE_CLEANUP_INTERVAL_MINUTES', 10),
            ),
            pending_expiry=timedelta(
                minutes=getattr(
                    settings,
                    'FILE_CLEANUP_PENDING_EXPIRY_MINUTES',
                    30,
                ),
            ),
            failed_expiry=timedelta(
                days=getattr(settings, 'FILE_CLEANUP_FAILED_EXPIRY_DAYS', 1),
            ),
            deleted_expiry=timedelta(
                days=getattr(settings, 'FILE_CLEANUP_DELETED_EXPIRY_DAYS', 30),
            ),
            dry_run=getattr(settings, 'FILE_CLEANUP_DRY_RUN', False),
        )


@dataclasses.dataclass
class CategoryReport:
    """Counters for one sweep pass."""

    matched: int = 0
    removed: int = 0
    failed: int = 0
    aborted: bool = False


@dataclasses.dataclass
class SweepReport:
    """Counters for one sweep cycle."""

    dry_run: bool
    categories: dict[SweepCategory, CategoryReport] = dataclasses.field(
        default_factory=dict,
    )

    @property
    def matched(self) -> int:
        """Records selected across all passes."""
        return sum(report.matched for report in self.categories.values())

    @property
    def removed(self) -> int:
        """Records removed across all passes."""
        return sum(report.removed for report in self.categories.values())

    @property
    def failed(self) -> int:
        """Records that could not be removed across all passes."""
        return sum(report.failed for report in self.categories.values())


def select_expired(
    category: SweepCategory,
    policy: RetentionPolicy,
    now: datetime,
) -> QuerySet[FileRecord]:
    """Select records a sweep pass should remove.

    A record exactly at the cutoff is included.

    Args:
        category: Sweep pass.
        policy: Expiry windows.
        now: Reference time.

    Returns:
        QuerySet of matching records, oldest first, trash included.
    """
    records = FileRecord.all_objects.all()
    if category is SweepCategory.STALE_PENDING:
        return records.filter(
            status=FileStatus.PENDING,
            created_at__lte=now - policy.pending_expiry,
        ).order_by('created_at')
    if category is SweepCategory.STALE_FAILED:
        return records.filter(
            status=FileStatus.FAILED,
            updated_at__lte=now - policy.failed_expiry,
        ).order_by('updated_at')
    return records.filter(
        is_deleted=True,
        updated_at__lte=now - policy.deleted_expiry,
    ).order_by('updated_at')


def run_sweep_cycle(
    policy: RetentionPolicy | None = None,
    now: datetime | None = None,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> SweepReport:
    """Run all three sweep passes once.

    Args:
        policy: Expiry windows, defaults to settings.
        now: Reference time, defaults to the current time.
        cancel_token: Stops the cycle between records.

    Returns:
        SweepReport with counters per pass.

    Raises:
        OperationCancelledError: If cancelled mid-cycle.
    """
    policy = policy or RetentionPolicy.from_settings()
    now = now or timezone.now()
    report = SweepReport(dry_run=policy.dry_run)

    for category in SweepCategory:
        cancel_token.raise_if_cancelled()
        category_report = CategoryReport()
        report.categories[category] = category_report
        try:
            _sweep_category(category, policy, now, category_report, cancel_token)
        except OperationCancelledError:
            raise
        except Exception:
            category_report.aborted = True
            logger.exception('%s: sweep pass failed', category.value)

    logger.info(
        'File cleanup cycle finished: %d matched, %d removed, %d failed%s',
        report.matched,
        report.removed,
        report.failed,
        ' (dry run)' if policy.dry_run else '',
    )
    return report


def _sweep_category(
    category: SweepCategory,
    policy: RetentionPolicy,
    now: datetime,
    category_report: CategoryReport,
    cancel_token: CancellationToken,
) -> None:
    file_records = list(select_expired(category, policy, now))
    category_report.matched = len(file_records)

    for file_record in file_records:
        cancel_token.raise_if_cancelled()
        if policy.dry_run:
            logger.info(
                '%s: would remove file %s (%s, key: %s)',
                category.value,
                file_record.file_name,
                file_record.id,
                file_record.object_key,
            )
            continue

        try:
            purge_file_record(file_record, cancel_token)
        except OperationCancelledError:
            raise
        except Exception:
            category_report.failed += 1
            logger.exception(
                '%s: could not remove file %s (key: %s)',
                category.value,
                file_record.id,
                file_record.object_key,
            )
        else:
            category_report.removed += 1
            logger.info(
                '%s: removed file %s (%s)',
                category.value,
                file_record.file_name,
                file_record.id,
            )


@final
class RetentionSweeper:
    """Runs sweep cycles on a fixed interval until cancelled.

    A failing cycle is logged and the loop waits for the next tick.
    Cancellation stops the loop between records; every row delete is
    its own statement, so no transaction is left half-applied.
    """

    def __init__(
        self,
        policy: RetentionPolicy | None = None,
        cancel_token: CancellationToken | None = None,
        manage_connections: bool = True,
    ) -> None:
        """Initialize the sweeper.

        Args:
            policy: Interval and expiry windows, defaults to settings.
            cancel_token: Token that stops the loop.
            manage_connections: Close stale DB connections between
                cycles, as request handling does.
        """
        self.policy = policy or RetentionPolicy.from_settings()
        self.cancel_token = cancel_token or CancellationToken()
        self._manage_connections = manage_connections
        self._thread: threading.Thread | None = None

    def run_once(self) -> SweepReport:
        """Run one sweep cycle with this sweeper's policy."""
        return run_sweep_cycle(self.policy, cancel_token=self.cancel_token)

    def run_forever(self) -> None:
        """Run sweep cycles until the cancel token fires."""
        logger.info(
            'Retention sweeper started (interval: %s, dry run: %s)',
            self.policy.interval,
            self.policy.dry_run,
        )
        while not self.cancel_token.is_cancelled():
            try:
                self.run_once()
            except OperationCancelledError:
                break
            except Exception:
                logger.exception('File cleanup cycle failed')
            finally:
                if self._manage_connections:
                    close_old_connections()
            self.cancel_token.event.wait(self.policy.interval.total_seconds())
        logger.info('Retention sweeper stopped')

    def start(self) -> threading.Thread:
        """Run the loop in a daemon thread.

        Returns:
            The started thread.
        """
        self._thread = threading.Thread(
            target=self._run_in_thread,
            name=_THREAD_NAME,
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        """Cancel the loop and wait for the thread to finish.

        Args:
            timeout: Seconds to wait for the thread, None waits forever.
        """
        self.cancel_token.cancel()
        if self._thread is not None:
            self._thread.join(timeout)

    def _run_in_thread(self) -> None:
        try:
            self.run_forever()
        finally:
            if self._manage_connections:
                connection.close()
