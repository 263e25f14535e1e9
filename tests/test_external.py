"""Tests for sweep config loading, the Slack notifier, the circuit breaker and the scheduler."""

import json
from datetime import date, timedelta

import httpx
import pytest

from conftest import T0
from sla_engine.config import RequestType
from sla_engine.core import ConfigurationException, NotificationException
from sla_engine.sla.application import (
    SLAAtRiskNotification,
    SLABreachNotification,
    SLADailyReportNotification,
)
from sla_engine.sla.domain import StatusCounts
from sla_engine.sla.infrastructure import (
    CircuitBreaker,
    CircuitState,
    SLAScheduler,
    SlackNotifier,
    SweepConfigManager,
)

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXXX"

BREACH = SLABreachNotification(
    request_id="c1",
    request_number="CON-0001",
    request_type=RequestType.CONSULTATION,
    subscriber_id="sub-1",
    sla_deadline=T0 + timedelta(days=1),
    breached_at=T0 + timedelta(days=1, minutes=5),
    provider_id="prov-1",
)


# ── Sweep config ─────────────────────────────────────────────────


class TestSweepConfigManager:
    def test_load(self, tmp_path) -> None:
        path = tmp_path / "sla_config.yaml"
        path.write_text("at_risk_threshold: 80\nactive_statuses:\n  call: [open]\n")

        manager = SweepConfigManager()
        config = manager.load(path)

        assert config.at_risk_threshold == 80
        assert manager.config.statuses_for(RequestType.CALL) == ["open"]
        assert manager.config.statuses_for(RequestType.SERVICE)[0] == "pending"

    def test_missing_file_uses_defaults(self, tmp_path) -> None:
        manager = SweepConfigManager()
        assert manager.load(tmp_path / "absent.yaml").at_risk_threshold == 75

    def test_invalid_file_rejected_on_load(self, tmp_path) -> None:
        path = tmp_path / "sla_config.yaml"
        path.write_text("at_risk_threshold: 0\n")
        with pytest.raises(ConfigurationException):
            SweepConfigManager().load(path)

    def test_failed_reload_keeps_previous(self, tmp_path) -> None:
        path = tmp_path / "sla_config.yaml"
        path.write_text("at_risk_threshold: 60\n")
        manager = SweepConfigManager()
        manager.load(path)

        path.write_text("at_risk_threshold: [not, a, number]\n")
        assert manager.reload() is False
        assert manager.config.at_risk_threshold == 60

        path.write_text("at_risk_threshold: 90\n")
        assert manager.reload() is True
        assert manager.config.at_risk_threshold == 90

    def test_config_before_load(self) -> None:
        with pytest.raises(RuntimeError):
            SweepConfigManager().config

    def test_watching_lifecycle(self, tmp_path) -> None:
        path = tmp_path / "sla_config.yaml"
        path.write_text("at_risk_threshold: 70\n")
        manager = SweepConfigManager()
        manager.load(path)

        manager.start_watching()
        manager.stop_watching()
        manager.stop_watching()


# ── Circuit breaker ──────────────────────────────────────────────


class TestCircuitBreaker:
    def test_opens_after_threshold_and_recovers(self) -> None:
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=lambda: now[0])

        breaker.record_failure()
        assert breaker.allow_request()
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

        now[0] = 31.0
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self) -> None:
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=10, clock=lambda: now[0])
        for _ in range(5):
            breaker.record_failure()
        now[0] = 11.0
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN


# ── Slack ────────────────────────────────────────────────────────


def _notifier(handler, **kwargs) -> SlackNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("webhook_url", WEBHOOK)
    kwargs.setdefault("retry_base_delay", 0)
    return SlackNotifier(channel="#sla-test", http_client=client, **kwargs)


class TestSlackNotifier:
    async def test_breach_message(self) -> None:
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(json.loads(request.content))
            return httpx.Response(200, text="ok")

        notifier = _notifier(handler)
        await notifier.notify_sla_breach(BREACH)
        await notifier.close()

        [payload] = sent
        assert payload["channel"] == "#sla-test"
        assert payload["text"] == "SLA breached: CON-0001"
        assert payload["blocks"][0]["text"]["text"] == "SLA Breach Alert"
        fields = [f["text"] for f in payload["blocks"][1]["fields"]]
        assert "*Type:*\nConsultation" in fields
        assert "*Provider:*\nprov-1" in fields

    async def test_at_risk_message(self) -> None:
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(json.loads(request.content))
            return httpx.Response(200)

        notifier = _notifier(handler)
        await notifier.notify_sla_at_risk(SLAAtRiskNotification(
            request_id="k1",
            request_number="CALL-7",
            request_type=RequestType.CALL,
            subscriber_id=None,
            sla_deadline=T0,
            hours_remaining=1,
        ))

        assert sent[0]["blocks"][2]["elements"][0]["text"] == "About 1 hour remaining"

    async def test_daily_report_message(self) -> None:
        notifier = SlackNotifier(webhook_url=WEBHOOK, channel="#sla-test")
        message = notifier.build_daily_report_message(SLADailyReportNotification(
            admin_user_id="u1",
            admin_email="admin@example.com",
            report_date=date(2024, 1, 15),
            summary=StatusCounts(total=3, breached=1, at_risk=1, on_track=1),
            by_request_type={RequestType.CALL: StatusCounts(total=3, breached=1, at_risk=1, on_track=1)},
        ))

        assert message["text"] == "Daily SLA report for 2024-01-15"
        fields = [f["text"] for f in message["blocks"][1]["fields"]]
        assert "*Total active:*\n3" in fields
        assert "*Breached:*\n1" in fields
        assert message["blocks"][2]["text"]["text"].startswith("*Call Request:* 3 total")

    def test_daily_report_payload_names_total_active(self) -> None:
        notification = SLADailyReportNotification(
            admin_user_id="u1",
            admin_email="admin@example.com",
            report_date=date(2024, 1, 15),
            summary=StatusCounts(total=5, breached=2, at_risk=1, on_track=2),
            by_request_type={RequestType.SERVICE: StatusCounts(total=5, breached=2, at_risk=1, on_track=2)},
        )

        payload = notification.to_dict()

        assert notification.total_active == 5
        assert payload["report_date"] == "2024-01-15"
        assert payload["summary"] == {"total_active": 5, "breached": 2, "at_risk": 1, "on_track": 2}
        assert payload["by_request_type"]["service"] == {"total": 5, "breached": 2, "at_risk": 1, "on_track": 2}

    async def test_unconfigured_webhook_is_noop(self) -> None:
        calls = []
        notifier = _notifier(lambda request: calls.append(request), webhook_url="")
        await notifier.notify_sla_breach(BREACH)
        assert calls == []

    async def test_retries_then_raises(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(500)

        notifier = _notifier(handler, max_retries=3)
        with pytest.raises(NotificationException):
            await notifier.notify_sla_breach(BREACH)
        assert len(attempts) == 3

    async def test_recovers_on_retry(self) -> None:
        responses = iter([httpx.Response(503), httpx.Response(200)])
        notifier = _notifier(lambda request: next(responses))

        await notifier.notify_sla_breach(BREACH)

        assert notifier.circuit_breaker.state == CircuitState.CLOSED

    async def test_transport_errors_retried(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        notifier = _notifier(handler, max_retries=2)
        with pytest.raises(NotificationException):
            await notifier.notify_sla_breach(BREACH)
        assert len(attempts) == 2

    async def test_open_circuit_short_circuits(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(500)

        notifier = _notifier(
            handler,
            max_retries=1,
            circuit_breaker=CircuitBreaker(failure_threshold=1, recovery_timeout=60),
        )
        with pytest.raises(NotificationException):
            await notifier.notify_sla_breach(BREACH)
        with pytest.raises(NotificationException):
            await notifier.notify_sla_breach(BREACH)

        assert len(attempts) == 1


# ── Scheduler ────────────────────────────────────────────────────


class TestSLAScheduler:
    async def test_registers_sweep_and_report_jobs(self) -> None:
        async def sweep():
            pass

        async def report():
            pass

        scheduler = SLAScheduler(interval_seconds=300, report_hour=6, report_minute=30)
        await scheduler.start(sweep, report)
        try:
            assert scheduler.is_running
            sweep_job = scheduler._scheduler.get_job("sla_sweep")
            report_job = scheduler._scheduler.get_job("sla_daily_report")
            assert sweep_job.max_instances == 1
            assert report_job is not None
        finally:
            await scheduler.stop()

        assert not scheduler.is_running

    async def test_report_job_optional(self) -> None:
        async def sweep():
            pass

        scheduler = SLAScheduler(interval_seconds=60)
        await scheduler.start(sweep)
        try:
            assert scheduler._scheduler.get_job("sla_daily_report") is None
        finally:
            await scheduler.stop()
