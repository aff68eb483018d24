"""Alert dispatcher: delivers monitor alerts over email and/or webhook.

Delivery problems are logged and reported as DELIVERY_FAILED; they never
propagate, so a broken mail server cannot stop the monitor.
"""

from __future__ import annotations

import asyncio
import email.mime.text
import smtplib
import socket
from typing import Optional, Protocol, Sequence

import httpx

from nodewarden.config import MonitorConfig
from nodewarden.logging_config import get_logger
from nodewarden.monitor.models import AlertRule, Comparison, DeliveryStatus, MonitorSample

logger = get_logger(__name__)


class AlertTransport(Protocol):
    async def send(self, subject: str, body: str) -> None: ...


class EmailTransport:
    """Sends alerts through an SMTP relay."""

    def __init__(self, config: MonitorConfig) -> None:
        self._config = config

    def _send_sync(self, subject: str, body: str) -> None:
        cfg = self._config
        msg = email.mime.text.MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = cfg.alert_email_from or cfg.smtp_username
        msg["To"] = cfg.alert_email_to

        with smtplib.SMTP(cfg.smtp_server, cfg.smtp_port, timeout=30) as server:
            if cfg.smtp_use_tls:
                server.starttls()
            if cfg.smtp_username:
                server.login(cfg.smtp_username, cfg.smtp_password)
            server.send_message(msg)

    async def send(self, subject: str, body: str) -> None:
        await asyncio.to_thread(self._send_sync, subject, body)


class WebhookTransport:
    """Posts alerts as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def send(self, subject: str, body: str) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(self._url, json={"subject": subject, "text": body})
            resp.raise_for_status()


def transports_from_config(config: MonitorConfig) -> list[AlertTransport]:
    transports: list[AlertTransport] = []
    if config.email_configured:
        transports.append(EmailTransport(config))
    if config.alert_webhook_url:
        transports.append(WebhookTransport(config.alert_webhook_url))
    return transports


class AlertDispatcher:
    """Stateful notifier invoked by the monitor loop for every fired rule."""

    def __init__(
        self,
        config: MonitorConfig,
        transports: Optional[Sequence[AlertTransport]] = None,
        hostname: Optional[str] = None,
    ) -> None:
        self._config = config
        self._transports = list(transports) if transports is not None else transports_from_config(config)
        self._hostname = hostname or socket.gethostname()
        self._active: set[str] = set()

    @property
    def enabled(self) -> bool:
        return self._config.alerting_enabled

    @property
    def is_configured(self) -> bool:
        return bool(self._transports)

    def is_active(self, rule: AlertRule) -> bool:
        return rule.name in self._active

    def resolve(self, rule: AlertRule) -> None:
        """Mark a rule's condition as cleared so the next breach alerts again."""
        if rule.name in self._active:
            self._active.discard(rule.name)
            logger.info("alert_resolved", rule=rule.name)

    async def notify(
        self,
        rule: AlertRule,
        sample: MonitorSample,
        previous: Optional[str] = None,
    ) -> DeliveryStatus:
        message = rule.render(sample, previous)
        logger.warning("alert_fired", rule=rule.name, message=message)

        if not self.enabled:
            return DeliveryStatus.SUPPRESSED

        deduped = self._config.alert_dedupe and rule.comparison is not Comparison.CHANGED
        if deduped and rule.name in self._active:
            logger.debug("alert_deduped", rule=rule.name)
            return DeliveryStatus.SUPPRESSED

        if not self._transports:
            logger.warning("alert_no_transport", rule=rule.name)
            return DeliveryStatus.DELIVERY_FAILED

        subject = f"Pi Node Alert on {self._hostname}: {rule.name}"
        body = f"{message}\n\n{sample.to_log_line()}"
        delivered = False
        for transport in self._transports:
            try:
                await transport.send(subject, body)
                delivered = True
            except Exception as exc:
                logger.error(
                    "alert_delivery_failed",
                    rule=rule.name,
                    transport=type(transport).__name__,
                    error=str(exc),
                )

        if not delivered:
            return DeliveryStatus.DELIVERY_FAILED
        if deduped:
            self._active.add(rule.name)
        logger.info("alert_delivered", rule=rule.name)
        return DeliveryStatus.DELIVERED
