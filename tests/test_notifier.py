"""Tests for the alert dispatcher and its transports."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from nodewarden.config import MonitorConfig
from nodewarden.monitor.models import DeliveryStatus, MonitorSample, default_rules
from nodewarden.monitor.notifier import (
    AlertDispatcher,
    EmailTransport,
    WebhookTransport,
    transports_from_config,
)

CPU_RULE, MEMORY_RULE, ADDRESS_RULE = default_rules(80.0, 500.0)
HOT = MonitorSample(cpu_percent=97.5, available_memory_mb=2048.0, external_address="1.2.3.4")


class RecordingTransport:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send(self, subject: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("relay refused")
        self.sent.append((subject, body))


def _config(tmp_path: Path, **overrides) -> MonitorConfig:
    return MonitorConfig(log_path=tmp_path / "m.log", alerting_enabled=True, **overrides)


class TestAlertDispatcher:

    @pytest.mark.asyncio
    async def test_delivers_rendered_message(self, tmp_path: Path) -> None:
        transport = RecordingTransport()
        dispatcher = AlertDispatcher(_config(tmp_path), transports=[transport], hostname="node-01")

        status = await dispatcher.notify(CPU_RULE, HOT)

        assert status is DeliveryStatus.DELIVERED
        subject, body = transport.sent[0]
        assert subject == "Pi Node Alert on node-01: high_cpu"
        assert body.startswith("CPU usage is 97.50% (threshold 80%)")
        assert "IP: 1.2.3.4" in body

    @pytest.mark.asyncio
    async def test_disabled_is_suppressed(self, tmp_path: Path) -> None:
        transport = RecordingTransport()
        config = MonitorConfig(log_path=tmp_path / "m.log", alerting_enabled=False)
        dispatcher = AlertDispatcher(config, transports=[transport])

        assert await dispatcher.notify(CPU_RULE, HOT) is DeliveryStatus.SUPPRESSED
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_no_transport_is_delivery_failure(self, tmp_path: Path) -> None:
        dispatcher = AlertDispatcher(_config(tmp_path), transports=[])
        assert not dispatcher.is_configured
        assert await dispatcher.notify(CPU_RULE, HOT) is DeliveryStatus.DELIVERY_FAILED

    @pytest.mark.asyncio
    async def test_failing_transport_never_raises(self, tmp_path: Path) -> None:
        dispatcher = AlertDispatcher(_config(tmp_path), transports=[RecordingTransport(fail=True)])
        assert await dispatcher.notify(MEMORY_RULE, HOT) is DeliveryStatus.DELIVERY_FAILED

    @pytest.mark.asyncio
    async def test_one_working_transport_is_enough(self, tmp_path: Path) -> None:
        good = RecordingTransport()
        dispatcher = AlertDispatcher(
            _config(tmp_path), transports=[RecordingTransport(fail=True), good],
        )
        assert await dispatcher.notify(CPU_RULE, HOT) is DeliveryStatus.DELIVERED
        assert len(good.sent) == 1

    @pytest.mark.asyncio
    async def test_dedupe_until_resolved(self, tmp_path: Path) -> None:
        transport = RecordingTransport()
        dispatcher = AlertDispatcher(_config(tmp_path, alert_dedupe=True), transports=[transport])

        assert await dispatcher.notify(CPU_RULE, HOT) is DeliveryStatus.DELIVERED
        assert dispatcher.is_active(CPU_RULE)
        assert await dispatcher.notify(CPU_RULE, HOT) is DeliveryStatus.SUPPRESSED

        dispatcher.resolve(CPU_RULE)
        assert not dispatcher.is_active(CPU_RULE)
        assert await dispatcher.notify(CPU_RULE, HOT) is DeliveryStatus.DELIVERED
        assert len(transport.sent) == 2

    @pytest.mark.asyncio
    async def test_address_changes_are_never_deduped(self, tmp_path: Path) -> None:
        transport = RecordingTransport()
        dispatcher = AlertDispatcher(_config(tmp_path, alert_dedupe=True), transports=[transport])

        await dispatcher.notify(ADDRESS_RULE, HOT, previous="9.9.9.9")
        await dispatcher.notify(ADDRESS_RULE, HOT, previous="8.8.8.8")

        assert len(transport.sent) == 2
        assert "from 9.9.9.9 to 1.2.3.4" in transport.sent[0][1]


class TestTransports:

    def test_transports_from_config(self, tmp_path: Path) -> None:
        assert transports_from_config(_config(tmp_path)) == []

        config = _config(
            tmp_path,
            smtp_server="smtp.example.test",
            alert_email_to="ops@example.test",
            alert_webhook_url="https://hooks.example.test/pi",
        )
        kinds = [type(t) for t in transports_from_config(config)]
        assert kinds == [EmailTransport, WebhookTransport]

    @pytest.mark.asyncio
    async def test_webhook_posts_json(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        transport = WebhookTransport(
            "https://hooks.example.test/pi", transport=httpx.MockTransport(handler),
        )
        await transport.send("subject", "body")

        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"subject": "subject", "text": "body"}

    @pytest.mark.asyncio
    async def test_webhook_error_status_raises(self) -> None:
        transport = WebhookTransport(
            "https://hooks.example.test/pi",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await transport.send("subject", "body")

    @pytest.mark.asyncio
    async def test_email_uses_smtp_relay(self, tmp_path: Path) -> None:
        config = _config(
            tmp_path,
            smtp_server="smtp.example.test",
            smtp_username="alerts@example.test",
            smtp_password="secret",
            alert_email_to="ops@example.test",
        )
        server = MagicMock()
        with patch("nodewarden.monitor.notifier.smtplib.SMTP") as smtp:
            smtp.return_value.__enter__.return_value = server
            await EmailTransport(config).send("Pi Node Alert", "CPU high")

        smtp.assert_called_once_with("smtp.example.test", 587, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("alerts@example.test", "secret")
        msg = server.send_message.call_args[0][0]
        assert msg["To"] == "ops@example.test"
        assert msg["From"] == "alerts@example.test"
