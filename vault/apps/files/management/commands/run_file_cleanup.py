"""Management command to run the retention sweeper."""

import dataclasses
import logging
import signal
import threading
from datetime import timedelta
from types import FrameType
from typing import Any, final, override

from django.core.management.base import BaseCommand

from vault.apps.files.cancellation import CancellationToken
from vault.apps.files.logic.retention_operations import (
    RetentionPolicy,
    RetentionSweeper,
    SweepReport,
)

logger = logging.getLogger(__name__)


@final
class Command(BaseCommand):
    """Purge stale pending, stale failed and expired soft-deleted files."""

    help = 'Run the file retention sweeper (loops until interrupted)'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--once',
            action='store_true',
            help='Run a single sweep cycle and exit',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be removed without removing anything',
        )
        parser.add_argument(
            '--interval-minutes',
            type=int,
            default=None,
            help='Minutes between cycles (default: from settings)',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        policy = RetentionPolicy.from_settings()
        if options['dry_run']:
            policy = dataclasses.replace(policy, dry_run=True)
        if options['interval_minutes'] is not None:
            policy = dataclasses.replace(
                policy,
                interval=timedelta(minutes=options['interval_minutes']),
            )

        sweeper = RetentionSweeper(policy=policy)

        if options['once']:
            self._write_report(sweeper.run_once())
            return

        self.stdout.write(
            self.style.SUCCESS(
                f'Starting file cleanup every {policy.interval}',
            ),
        )
        self._install_stop_handler(sweeper.cancel_token)
        try:
            sweeper.run_forever()
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nShutting down...'))
            sweeper.cancel_token.cancel()
        self.stdout.write(self.style.SUCCESS('File cleanup stopped'))

    def _install_stop_handler(self, cancel_token: CancellationToken) -> None:
        """Stop the loop on SIGTERM.

        Args:
            cancel_token: Token of the running sweeper.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def stop(signum: int, frame: FrameType | None) -> None:  # noqa: WPS430
            logger.info('Received signal %d, stopping file cleanup', signum)
            cancel_token.cancel()

        signal.signal(signal.SIGTERM, stop)

    def _write_report(self, report: SweepReport) -> None:
        for category, category_report in report.categories.items():
            self.stdout.write(
                f'{category.value}: {category_report.matched} matched, '
                f'{category_report.removed} removed, '
                f'{category_report.failed} failed',
            )

        if report.dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would purge {report.matched} files'),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Purged {report.removed} files, {report.failed} failed',
                ),
            )
