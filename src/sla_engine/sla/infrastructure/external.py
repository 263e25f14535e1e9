"""
SLA External Service Integrations
==================================

External services for SLA tracking:
- YAML sweep config with watchdog hot-reload
- Slack webhook notifications
- APScheduler for the periodic sweep and the daily report
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from sla_engine.config import settings
from sla_engine.core import ConfigurationException, NotificationException
from sla_engine.shared.infrastructure.logging import get_logger
from sla_engine.sla.application.ports import (
    INotificationPort,
    ISweepConfigProvider,
    SLAAtRiskNotification,
    SLABreachNotification,
    SLADailyReportNotification,
)
from sla_engine.sla.domain import SweepConfig
from sla_engine.sla.domain.value_objects import REQUEST_TYPE_DISPLAY_NAMES

logger = get_logger(__name__)


# ========== Sweep configuration ==========

class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for sweep config file changes."""

    def __init__(self, config_manager: "SweepConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Sweep config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class SweepConfigManager(ISweepConfigProvider):
    """
    Thread-safe sweep configuration with hot-reload support.

    The watchdog observer runs in its own thread; readers always see either
    the previous or the new configuration, never a partial one.
    """

    def __init__(self):
        self._config: Optional[SweepConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SweepConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: The file exists but is not a valid config
        """
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except Exception as e:
            raise ConfigurationException(
                f"Invalid sweep config {self._path}",
                {"error": str(e)}
            ) from e
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SweepConfig:
        if not path.exists():
            logger.warning("Sweep config file not found, using defaults", extra={"path": str(path)})
            return SweepConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return SweepConfig(**data)

    def reload(self) -> bool:
        """Reload from file; a failed reload keeps the previous configuration."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except Exception as e:
            logger.error(
                "Failed to reload sweep config, keeping previous",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "Sweep configuration reloaded",
            extra={"at_risk_threshold": new_config.at_risk_threshold}
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skipped when the file does not exist or the platform cannot watch it.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Sweep config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching sweep config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> SweepConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("Sweep configuration not loaded")
            return self._config


# ========== Circuit breaker ==========

class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


# ========== Slack ==========

class SlackNotifier(INotificationPort):
    """
    Slack webhook notifier with circuit breaker and retry logic.

    Delivery failures raise NotificationException so the sweep can record
    them; an unconfigured webhook is a silent no-op.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        channel: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0
    ):
        self._webhook_url = webhook_url if webhook_url is not None else settings.slack_webhook_url
        self._channel = channel or settings.slack_channel
        self._timeout = timeout_seconds or settings.slack_timeout_seconds
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._max_retries = max(1, max_retries)
        self._retry_base_delay = retry_base_delay

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    # ========== Message builders ==========

    def _fields(self, notification) -> List[Dict[str, Any]]:
        kind = REQUEST_TYPE_DISPLAY_NAMES[notification.request_type]
        fields = [
            {"type": "mrkdwn", "text": f"*Request:*\n{notification.request_number}"},
            {"type": "mrkdwn", "text": f"*Type:*\n{kind}"},
            {"type": "mrkdwn", "text": f"*Deadline:*\n{notification.sla_deadline.isoformat()}"},
        ]
        if notification.provider_id:
            fields.append({"type": "mrkdwn", "text": f"*Provider:*\n{notification.provider_id}"})
        return fields

    def build_breach_message(self, notification: SLABreachNotification) -> Dict[str, Any]:
        return {
            "channel": self._channel,
            "text": f"SLA breached: {notification.request_number}",
            "blocks": [
                {"type": "header", "text": {"type": "plain_text", "text": "SLA Breach Alert"}},
                {"type": "section", "fields": self._fields(notification)},
                {
                    "type": "context",
                    "elements": [{
                        "type": "mrkdwn",
                        "text": f"Breached at {notification.breached_at.isoformat()}"
                    }]
                },
            ],
        }

    def build_at_risk_message(self, notification: SLAAtRiskNotification) -> Dict[str, Any]:
        hours = notification.hours_remaining
        return {
            "channel": self._channel,
            "text": f"SLA at risk: {notification.request_number}",
            "blocks": [
                {"type": "header", "text": {"type": "plain_text", "text": "SLA At-Risk Warning"}},
                {"type": "section", "fields": self._fields(notification)},
                {
                    "type": "context",
                    "elements": [{
                        "type": "mrkdwn",
                        "text": f"About {hours} hour{'' if hours == 1 else 's'} remaining"
                    }]
                },
            ],
        }

    def build_daily_report_message(self, notification: SLADailyReportNotification) -> Dict[str, Any]:
        summary = notification.summary
        lines = [
            f"*{REQUEST_TYPE_DISPLAY_NAMES[kind]}:* {counts.total} total, "
            f"{counts.breached} breached, {counts.at_risk} at risk, {counts.on_track} on track"
            for kind, counts in notification.by_request_type.items()
        ]
        return {
            "channel": self._channel,
            "text": f"Daily SLA report for {notification.report_date.isoformat()}",
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": f"Daily SLA Report {notification.report_date.isoformat()}"}
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*Total active:*\n{notification.total_active}"},
                        {"type": "mrkdwn", "text": f"*Breached:*\n{summary.breached}"},
                        {"type": "mrkdwn", "text": f"*At risk:*\n{summary.at_risk}"},
                        {"type": "mrkdwn", "text": f"*On track:*\n{summary.on_track}"},
                    ]
                },
                {"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines) or "No requests"}},
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": f"For {notification.admin_email}"}]
                },
            ],
        }

    # ========== INotificationPort ==========

    async def notify_sla_breach(self, notification: SLABreachNotification) -> None:
        await self._send(self.build_breach_message(notification), notification.request_id)

    async def notify_sla_at_risk(self, notification: SLAAtRiskNotification) -> None:
        await self._send(self.build_at_risk_message(notification), notification.request_id)

    async def notify_sla_daily_report(self, notification: SLADailyReportNotification) -> None:
        payload = notification.to_dict()
        logger.info(
            "Sending daily SLA report",
            extra={
                "recipient": notification.admin_user_id,
                "report_date": payload["report_date"],
                "summary": payload["summary"]
            }
        )
        await self._send(self.build_daily_report_message(notification), notification.admin_user_id)

    async def _send(self, message: Dict[str, Any], reference: str) -> None:
        """
        POST a message to the webhook with exponential backoff.

        Raises:
            NotificationException: Circuit open or all attempts failed
        """
        if not self._webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return

        if not self._circuit_breaker.allow_request():
            raise NotificationException("Slack circuit breaker open", {"reference": reference})

        last_error = "unknown error"
        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info("Slack notification sent", extra={"reference": reference})
                    return

                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                logger.error(
                    "Slack notification failed",
                    extra={"error": last_error, "attempt": attempt + 1, "reference": reference}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * 2 ** attempt)

        self._circuit_breaker.record_failure()
        raise NotificationException(
            f"Slack delivery failed after {self._max_retries} attempts: {last_error}",
            {"reference": reference}
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


# ========== Scheduler ==========

class SLAScheduler:
    """
    Wrapper for APScheduler driving the sweep and the daily report.

    Jobs use max_instances=1, so a tick never overlaps the previous one of
    the same job.
    """

    def __init__(
        self,
        interval_seconds: int = 300,
        report_hour: int = 0,
        report_minute: int = 0
    ):
        self.interval_seconds = interval_seconds
        self.report_hour = report_hour
        self.report_minute = report_minute
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(
        self,
        sweep_job: Callable[[], Awaitable[None]],
        daily_report_job: Optional[Callable[[], Awaitable[None]]] = None
    ) -> None:
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")

        self._scheduler.add_job(
            sweep_job,
            "interval",
            seconds=self.interval_seconds,
            id="sla_sweep",
            name="SLA Sweep Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        if daily_report_job is not None:
            self._scheduler.add_job(
                daily_report_job,
                "cron",
                hour=self.report_hour,
                minute=self.report_minute,
                id="sla_daily_report",
                name="SLA Daily Report Job",
                misfire_grace_time=3600,
                max_instances=1,
                replace_existing=True
            )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={
                "interval_seconds": self.interval_seconds,
                "daily_report": f"{self.report_hour:02d}:{self.report_minute:02d} UTC" if daily_report_job else None
            }
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
