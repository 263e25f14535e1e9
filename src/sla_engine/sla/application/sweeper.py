"""
SLA Sweeper
===========

Periodic reconciliation of stored SLA status across every request kind.

One sweep: for each registered kind load the active requests, recompute
their status, persist changes and alert on transitions into breached or
at_risk. Kinds run concurrently on a bounded pool, each filling its own
KindSweepResult; results are merged in registry order once all finish.

The single-flight guard is an in-process flag. Running several scheduler
processes against one database double-processes and double-notifies.
"""

import asyncio
import time
from datetime import date, datetime, time as dt_time, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional

from sla_engine.config import RequestType
from sla_engine.core import SweepInProgressException
from sla_engine.shared.infrastructure.logging import get_logger, log_latency
from sla_engine.sla.application.ports import (
    INotificationPort,
    IReportRecipientProvider,
    IRequestStore,
    ISweepConfigProvider,
    SLAAtRiskNotification,
    SLABreachNotification,
    SLADailyReportNotification,
)
from sla_engine.sla.domain import (
    DailySLAReport,
    KindSweepResult,
    RequestSLASnapshot,
    SLACalculator,
    SLADeadlines,
    SLAUpdateResult,
    StatusCheckResult,
    SweepConfig,
    SweepReport,
)
from sla_engine.sla.domain.value_objects import round_half_up, utcnow

logger = get_logger(__name__)

MAX_REPORT_RECIPIENTS = 10


class SLASweeper:
    """
    Sweep driver with a single-flight guard.

    Args:
        stores: Request store per kind; iteration order is the merge order
        notifier: Alert delivery port
        config_provider: Active status sets and at-risk threshold
        recipient_provider: Daily report recipients
        max_concurrency: Kinds swept at the same time
        timeout_seconds: Per-run deadline; unfinished kinds are reported as skipped
        clock: Source of "now"
    """

    def __init__(
        self,
        stores: Mapping[RequestType, IRequestStore],
        notifier: INotificationPort,
        config_provider: Optional[ISweepConfigProvider] = None,
        recipient_provider: Optional[IReportRecipientProvider] = None,
        max_concurrency: int = 5,
        timeout_seconds: Optional[float] = 240.0,
        clock: Callable[[], datetime] = utcnow
    ):
        self._stores: Dict[RequestType, IRequestStore] = dict(stores)
        self._notifier = notifier
        self._config_provider = config_provider
        self._recipient_provider = recipient_provider
        self._max_concurrency = max(1, max_concurrency)
        self._timeout_seconds = timeout_seconds
        self._clock = clock
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def kinds(self) -> List[RequestType]:
        return list(self._stores)

    def _config(self) -> SweepConfig:
        if self._config_provider is None:
            return SweepConfig()
        return self._config_provider.config

    # ========== Sweep ==========

    async def sweep(self) -> Optional[SweepReport]:
        """
        Run one sweep.

        Returns:
            SweepReport, or None when another sweep was already running
        """
        if self._running:
            logger.info("SLA sweep already in progress, skipping this tick")
            return None

        self._running = True
        try:
            return await self._run()
        finally:
            self._running = False

    async def manual_trigger(self) -> SweepReport:
        """
        Run a sweep on demand.

        Raises:
            SweepInProgressException: A sweep is already running
        """
        if self._running:
            raise SweepInProgressException()
        logger.info("Manual SLA sweep triggered")
        return await self.sweep()

    async def run_scheduled_sweep(self) -> None:
        """Scheduler entry point; never raises so the next tick still fires."""
        try:
            await self.sweep()
        except Exception as e:
            logger.exception("Scheduled SLA sweep failed", extra={"error": str(e)})

    async def _run(self) -> SweepReport:
        config = self._config()
        calculator = SLACalculator(config.at_risk_threshold)
        now = self._clock()
        started = time.perf_counter()

        logger.info(
            "SLA sweep started",
            extra={"kinds": [kind.value for kind in self._stores], "executed_at": now.isoformat()}
        )

        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = {kind: KindSweepResult(kind=kind) for kind in self._stores}
        tasks = {
            kind: asyncio.create_task(
                self._sweep_kind(
                    kind, store, config.statuses_for(kind), calculator, now, results[kind], semaphore
                )
            )
            for kind, store in self._stores.items()
        }

        pending = set()
        if tasks:
            _, pending = await asyncio.wait(tasks.values(), timeout=self._timeout_seconds)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        report = SweepReport(executed_at=now)
        for kind, task in tasks.items():
            report.merge(results[kind])
            if task in pending:
                report.skipped_kinds.append(kind)
            elif task.exception() is not None:
                report.errors.append(f"Failed to check {kind.value}: {task.exception()}")
        report.duration_ms = round((time.perf_counter() - started) * 1000, 2)

        if report.skipped_kinds:
            logger.warning(
                "SLA sweep timed out, kinds skipped",
                extra={
                    "skipped_kinds": [kind.value for kind in report.skipped_kinds],
                    "timeout_seconds": self._timeout_seconds
                }
            )
        logger.info(
            "SLA sweep completed",
            extra={
                "total_checked": report.total_checked,
                "total_updated": report.total_updated,
                "breaches_detected": report.breaches_detected,
                "at_risk_detected": report.at_risk_detected,
                "errors": len(report.errors),
                "duration_ms": report.duration_ms
            }
        )
        if report.breaches_detected > 0:
            logger.warning(
                "SLA breaches detected",
                extra={"breaches_detected": report.breaches_detected}
            )
        return report

    async def _sweep_kind(
        self,
        kind: RequestType,
        store: IRequestStore,
        statuses: List[str],
        calculator: SLACalculator,
        now: datetime,
        result: KindSweepResult,
        semaphore: asyncio.Semaphore
    ) -> None:
        async with semaphore:
            try:
                snapshots = await store.list_active(statuses)
            except Exception as e:
                logger.error(
                    "Failed to load requests for SLA sweep",
                    extra={"request_kind": kind.value, "error": str(e)}
                )
                result.errors.append(f"Failed to check {kind.value}: {e}")
                return

            for snapshot in snapshots:
                deadlines = snapshot.stored_deadlines()
                if deadlines is None:
                    continue
                await self._process(kind, store, snapshot, deadlines, calculator, now, result)

    async def _process(
        self,
        kind: RequestType,
        store: IRequestStore,
        snapshot: RequestSLASnapshot,
        deadlines: SLADeadlines,
        calculator: SLACalculator,
        now: datetime,
        result: KindSweepResult
    ) -> None:
        """Evaluate one request; failures are recorded and never propagate."""
        try:
            check = calculator.evaluate(snapshot, deadlines, now)
        except Exception as e:
            logger.error(
                "Failed to evaluate SLA status",
                extra={"request_kind": kind.value, "request_id": snapshot.request_id, "error": str(e)}
            )
            result.errors.append(f"{kind.value} {snapshot.request_id}: {e}")
            return

        result.checked += 1
        if check.is_breached:
            result.breached += 1
        elif check.is_at_risk:
            result.at_risk += 1

        if not check.has_changed:
            return

        try:
            await store.update_status(snapshot.request_id, check.current_status)
        except Exception as e:
            logger.error(
                "Failed to persist SLA status",
                extra={"request_kind": kind.value, "request_id": snapshot.request_id, "error": str(e)}
            )
            result.errors.append(f"{kind.value} {snapshot.request_id}: {e}")
            return

        result.updated += 1
        result.updates.append(SLAUpdateResult(
            request_id=snapshot.request_id,
            request_kind=kind,
            request_number=snapshot.request_number,
            previous_status=check.previous_status,
            new_status=check.current_status,
            is_breached=check.is_breached,
            is_at_risk=check.is_at_risk,
            subscriber_id=snapshot.subscriber_id,
            provider_id=snapshot.provider_id,
        ))

        if not (check.is_breached or check.is_at_risk):
            return
        try:
            await self._notify(kind, snapshot, deadlines, check, now)
        except Exception as e:
            logger.warning(
                "SLA notification failed",
                extra={"request_kind": kind.value, "request_id": snapshot.request_id, "error": str(e)}
            )
            result.errors.append(f"{kind.value} {snapshot.request_id}: {e}")

    async def _notify(
        self,
        kind: RequestType,
        snapshot: RequestSLASnapshot,
        deadlines: SLADeadlines,
        check: StatusCheckResult,
        now: datetime
    ) -> None:
        if check.is_breached:
            await self._notifier.notify_sla_breach(SLABreachNotification(
                request_id=snapshot.request_id,
                request_number=snapshot.request_number,
                request_type=kind,
                subscriber_id=snapshot.subscriber_id,
                provider_id=snapshot.provider_id,
                sla_deadline=deadlines.resolution_deadline,
                breached_at=now,
            ))
            return

        remaining = max(timedelta(0), deadlines.resolution_deadline - now)
        await self._notifier.notify_sla_at_risk(SLAAtRiskNotification(
            request_id=snapshot.request_id,
            request_number=snapshot.request_number,
            request_type=kind,
            subscriber_id=snapshot.subscriber_id,
            provider_id=snapshot.provider_id,
            sla_deadline=deadlines.resolution_deadline,
            hours_remaining=round_half_up(remaining.total_seconds() / 3600),
        ))

    # ========== Daily report ==========

    async def generate_daily_report(self, today: Optional[date] = None) -> DailySLAReport:
        """
        Count the previous UTC day's created requests per kind by stored status.

        A kind whose store fails is logged and left out of the report.
        """
        today = today or self._clock().date()
        report_date = today - timedelta(days=1)
        created_from = datetime.combine(report_date, dt_time.min, tzinfo=timezone.utc)
        created_to = created_from + timedelta(days=1)

        report = DailySLAReport(report_date=report_date)
        with log_latency(logger, "sla_daily_report_counts", report_date=report_date.isoformat()):
            for kind, store in self._stores.items():
                try:
                    report.by_request_type[kind] = await store.count_by_status(created_from, created_to)
                except Exception as e:
                    logger.error(
                        "Failed to count requests for daily SLA report",
                        extra={"request_kind": kind.value, "error": str(e)}
                    )
        return report

    async def send_daily_report(self, today: Optional[date] = None) -> int:
        """
        Build the daily report and send it to each recipient.

        Returns:
            Number of recipients notified successfully
        """
        report = await self.generate_daily_report(today)
        if self._recipient_provider is None:
            logger.info("No report recipient provider configured, skipping daily SLA report")
            return 0

        recipients = (await self._recipient_provider.list_recipients())[:MAX_REPORT_RECIPIENTS]
        summary = report.summary
        sent = 0
        for recipient in recipients:
            try:
                await self._notifier.notify_sla_daily_report(SLADailyReportNotification(
                    admin_user_id=recipient.user_id,
                    admin_email=recipient.email,
                    report_date=report.report_date,
                    summary=summary,
                    by_request_type=dict(report.by_request_type),
                ))
                sent += 1
            except Exception as e:
                logger.error(
                    "Failed to send daily SLA report",
                    extra={"recipient": recipient.user_id, "error": str(e)}
                )

        logger.info(
            "Daily SLA report sent",
            extra={
                "report_date": report.report_date.isoformat(),
                "recipients": sent,
                "total_active": summary.total,
                "breached": summary.breached
            }
        )
        return sent

    async def run_daily_report(self) -> None:
        """Scheduler entry point for the daily report."""
        try:
            await self.send_daily_report()
        except Exception as e:
            logger.exception("Daily SLA report job failed", extra={"error": str(e)})
