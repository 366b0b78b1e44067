# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics exposed by the SMTP sender."""

from prometheus_client import CollectorRegistry, Counter, generate_latest


class MailMetrics:
    """Wrapper around the Prometheus registry used by the sender."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create counters inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.sent = Counter("mime_mailer_sent_total", "Total sent emails", ["host"], registry=self.registry)
        self.errors = Counter("mime_mailer_errors_total", "Total send errors", ["host"], registry=self.registry)
        self.bytes = Counter("mime_mailer_bytes_total", "Total serialized message bytes", registry=self.registry)

    def inc_sent(self, host: str | None):
        """Increase the ``sent`` counter for the given server."""
        self.sent.labels(host=host or "default").inc()

    def inc_error(self, host: str | None):
        """Increase the ``errors`` counter for the given server."""
        self.errors.labels(host=host or "default").inc()

    def add_bytes(self, count: int):
        """Account for ``count`` bytes handed to the transport."""
        self.bytes.inc(count)

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
