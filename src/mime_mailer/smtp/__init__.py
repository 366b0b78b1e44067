# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP transport: sender, pool and connection monitor."""

from .monitor import ConnectionMonitor
from .pool import SenderPool
from .sender import ByteSource, Sender, SmtpSender

__all__ = ["ByteSource", "ConnectionMonitor", "Sender", "SenderPool", "SmtpSender"]
